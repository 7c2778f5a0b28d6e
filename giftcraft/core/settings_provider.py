"""
用户偏好设置（自动保存开关、主题）

保存在一个小 JSON 文件中；文件缺失或损坏时逐字段回退到默认值，不报错。
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional

from giftcraft.core.logging import get_logger

logger = get_logger(__name__)

ThemeMode = Literal["light", "dark"]

DEFAULT_AUTOSAVE_ENABLED = True
DEFAULT_THEME: ThemeMode = "light"

AutosaveListener = Callable[[bool], None]


def load_preferences(path: Optional[Path]) -> Dict[str, Any]:
    """读取偏好设置文件；损坏或缺失字段使用默认值"""
    raw: Dict[str, Any] = {}
    if path is not None:
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(parsed, dict):
                raw = parsed
        except (OSError, ValueError):
            # 忽略损坏的设置文件
            raw = {}

    autosave_enabled = raw.get("autosaveEnabled")
    theme = raw.get("theme")
    return {
        "autosaveEnabled": autosave_enabled if isinstance(autosave_enabled, bool) else DEFAULT_AUTOSAVE_ENABLED,
        "theme": theme if theme in ("light", "dark") else DEFAULT_THEME,
    }


class AppSettingsProvider:
    """可订阅的用户偏好设置"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        initial = load_preferences(self.path)
        self._autosave_enabled: bool = initial["autosaveEnabled"]
        self._theme: ThemeMode = initial["theme"]
        self._listeners: List[AutosaveListener] = []

    @property
    def autosave_enabled(self) -> bool:
        return self._autosave_enabled

    @property
    def theme(self) -> ThemeMode:
        return self._theme

    def set_autosave_enabled(self, value: bool) -> None:
        """切换自动保存；变化时通知订阅者"""
        if value == self._autosave_enabled:
            return
        self._autosave_enabled = value
        self._persist()
        logger.info("autosave_setting_changed", autosave_enabled=value)
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("settings_listener_failed")

    def set_theme(self, mode: ThemeMode) -> None:
        if mode not in ("light", "dark"):
            raise ValueError(f"Invalid theme: {mode}")
        if mode == self._theme:
            return
        self._theme = mode
        self._persist()

    def subscribe(self, listener: AutosaveListener) -> Callable[[], None]:
        """订阅自动保存开关变化；返回取消订阅函数"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def to_dict(self) -> Dict[str, Any]:
        return {"autosaveEnabled": self._autosave_enabled, "theme": self._theme}

    def _persist(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.to_dict()), encoding="utf-8")
        except OSError as e:
            logger.warning("settings_persist_failed", path=str(self.path), error=str(e))
