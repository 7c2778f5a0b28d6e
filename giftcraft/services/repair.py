"""
一致性修复（项目激活时执行）

规则（逐屏幕）：
1. media_mode 为 video 但 video_id 缺失或不在 data.videos 中：
   降级为 classic，清除 video_id，并清空该屏幕的 images
2. 最终为 video：清除 audio_id / extend_music_to_next / gallery_layout
3. 最终为 classic：清除 video_id，images 保持不变

只有第 1 种强制降级才会清空 images；本来就是 classic 的屏幕永远不会丢图片。
"""

from typing import Dict, Set

from giftcraft.schemas.project import MediaMode, Project, ScreenData

# video 模式下不允许出现的字段
CLASSIC_ONLY_FIELDS = ("audio_id", "extend_music_to_next", "gallery_layout")


def repair_screen(screen: ScreenData, valid_video_ids: Set[str]) -> ScreenData:
    """修复单个屏幕；无需修改时返回原对象"""
    has_valid_video = screen.video_id is not None and screen.video_id in valid_video_ids
    update: Dict = {}

    if screen.media_mode == MediaMode.VIDEO and not has_valid_video:
        update["media_mode"] = MediaMode.CLASSIC
        update["video_id"] = None
        update["images"] = []

    media_mode = update.get("media_mode", screen.media_mode)
    if media_mode == MediaMode.VIDEO:
        for field in CLASSIC_ONLY_FIELDS:
            if getattr(screen, field) is not None:
                update[field] = None
    elif screen.video_id is not None:
        update["video_id"] = None

    if not update:
        return screen
    return screen.model_copy(update=update)


def repair_project(project: Project) -> Project:
    """对项目执行一致性修复，返回新的项目对象（输入不会被修改）"""
    valid_video_ids = {video.id for video in project.data.videos}

    screens = {
        screen_id: repair_screen(screen, valid_video_ids)
        for screen_id, screen in project.data.screens.items()
    }
    if all(screens[screen_id] is screen for screen_id, screen in project.data.screens.items()):
        return project

    data = project.data.model_copy(update={"screens": screens})
    return project.model_copy(update={"data": data})
