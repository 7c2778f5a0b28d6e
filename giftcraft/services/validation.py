"""
导入数据校验服务
"""

import json
from typing import Any, List

from pydantic import ValidationError as PydanticValidationError

from giftcraft.core.logging import get_logger
from giftcraft.schemas.project import CURRENT_SCHEMA_VERSION, Project
from giftcraft.schemas.validation import ValidationError, ValidationResult

logger = get_logger(__name__)

# 必填的顶层字符串字段：(JSON 键, 错误信息)
REQUIRED_STRING_FIELDS = (
    ("id", "Project ID is required and must be a string"),
    ("name", "Project name is required and must be a string"),
    ("templateId", "Template ID is required and must be a string"),
)


class ValidationService:
    """导入数据的结构校验"""

    def validate_import(self, json_data: Any) -> ValidationResult:
        """
        校验导入数据

        Args:
            json_data: 已解析的 JSON 对象，或 JSON 字符串

        Returns:
            ValidationResult；通过时 project 为解析后的 Project
        """
        if isinstance(json_data, (str, bytes)):
            try:
                json_data = json.loads(json_data)
            except json.JSONDecodeError as e:
                return _invalid([ValidationError(field="root", message=f"Error parsing import data: {e}")])

        if not isinstance(json_data, dict) or not json_data:
            return _invalid([ValidationError(field="root", message="Invalid JSON structure")])

        errors: List[ValidationError] = []
        for key, message in REQUIRED_STRING_FIELDS:
            value = json_data.get(key)
            if not isinstance(value, str) or not value:
                errors.append(ValidationError(field=key, message=message))

        if not isinstance(json_data.get("data"), dict):
            errors.append(ValidationError(field="data", message="Project data is required"))

        schema_version = json_data.get("schemaVersion")
        if schema_version is not None:
            if isinstance(schema_version, bool) or not isinstance(schema_version, int):
                errors.append(ValidationError(field="schemaVersion", message="Schema version must be an integer"))
            elif schema_version > CURRENT_SCHEMA_VERSION:
                errors.append(
                    ValidationError(
                        field="schemaVersion",
                        message=f"Unsupported schema version {schema_version} (newest supported: {CURRENT_SCHEMA_VERSION})",
                    )
                )

        if errors:
            return _invalid(errors)

        try:
            project = Project.model_validate(json_data)
        except PydanticValidationError as e:
            return _invalid(
                [
                    ValidationError(
                        field=".".join(str(part) for part in err["loc"]) or "root",
                        message=f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}",
                    )
                    for err in e.errors()
                ]
            )

        return ValidationResult(is_valid=True, errors=[], project=project)


def _invalid(errors: List[ValidationError]) -> ValidationResult:
    logger.info("import_validation_failed", error_count=len(errors), fields=[e.field for e in errors])
    return ValidationResult(is_valid=False, errors=errors)
