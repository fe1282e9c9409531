"""Input validation rules for AIHs, movements, glosas and justifications."""

from typing import Any, List, Mapping, NamedTuple, Optional
from common.enums import AIHStatus, MovementType, ProfessionalField
import math
import re
import logging

logger = logging.getLogger(__name__)

MAX_ATTENDANCES = 100
MAX_ATTENDANCE_LENGTH = 50
MIN_JUSTIFICATION_LENGTH = 10


class ValidationResult(NamedTuple):
    """Result of an input validation."""

    is_valid: bool
    errors: List[str]
    warnings: List[str]


def _to_float(value: Any) -> Optional[float]:
    """Parse a number the way form input arrives (numbers or numeric strings)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


class AuditRuleValidator:
    """Field-level rules. Each check returns (errors, warnings)."""

    # Competence format: MM/YYYY with a real month
    COMPETENCE_PATTERN = re.compile(r"^(0[1-9]|1[0-2])/\d{4}$")

    # Nominal AIH number format, not enforced
    AIH_NUMBER_PATTERN = re.compile(r"^\d{13}$")

    @classmethod
    def validate_aih_number(cls, numero_aih: Any) -> tuple[List[str], List[str]]:
        errors = []
        warnings = []

        if not isinstance(numero_aih, str) or not numero_aih.strip():
            errors.append("AIH number is required")
        elif not cls.AIH_NUMBER_PATTERN.match(numero_aih.strip()):
            warnings.append(f"AIH number {numero_aih} does not have the usual 13 digits")

        return errors, warnings

    @classmethod
    def validate_initial_value(cls, valor: Any) -> tuple[List[str], List[str]]:
        number = _to_float(valor)
        if number is None or number <= 0:
            return ["Initial value must be a positive number"], []
        return [], []

    @classmethod
    def validate_competence(cls, competencia: Any, required: bool = True) -> tuple[List[str], List[str]]:
        if is_blank(competencia):
            return (["Competence must use the MM/YYYY format"], []) if required else ([], [])
        if not cls.COMPETENCE_PATTERN.match(str(competencia).strip()):
            return [f"Competence must use the MM/YYYY format: {competencia}"], []
        return [], []

    @classmethod
    def validate_attendances(cls, attendances: List[str]) -> tuple[List[str], List[str]]:
        errors = []

        if not attendances:
            errors.append("At least one attendance required")
        elif len(attendances) > MAX_ATTENDANCES:
            errors.append(f"Too many attendances (maximum {MAX_ATTENDANCES})")

        return errors, []

    @classmethod
    def validate_movement_type(cls, tipo: Any) -> tuple[List[str], List[str]]:
        if tipo not in {t.value for t in MovementType}:
            return [f"Invalid movement type: {tipo}"], []
        return [], []

    @classmethod
    def validate_status(cls, status: Any) -> tuple[List[str], List[str]]:
        code = _to_int(status)
        if code is None or code not in {s.value for s in AIHStatus}:
            return [f"Invalid AIH status: {status}"], []
        return [], []

    @classmethod
    def validate_account_value(cls, valor: Any) -> tuple[List[str], List[str]]:
        if is_blank(valor):
            return [], []
        number = _to_float(valor)
        if number is None or number < 0:
            return ["Account value must be a non-negative number"], []
        return [], []


def normalize_attendances(raw: Any) -> List[str]:
    """
    Turn the attendance input into a clean list of numbers.

    Accepts a list, a comma/newline separated string or a mapping (its
    values are used). Items are trimmed; empty ones and ones longer than
    50 characters are dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        items = re.split(r"[,\n\r]", raw)
    elif isinstance(raw, Mapping):
        items = list(raw.values())
    elif isinstance(raw, (list, tuple)):
        items = list(raw)
    else:
        return []

    normalized = []
    for item in items:
        if item is None:
            continue
        value = str(item).strip()
        if value and len(value) <= MAX_ATTENDANCE_LENGTH:
            normalized.append(value)
    return normalized


def _collect(*checks: tuple) -> ValidationResult:
    errors = []
    warnings = []
    for check_errors, check_warnings in checks:
        errors.extend(check_errors)
        warnings.extend(check_warnings)
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_aih(data: Mapping[str, Any]) -> ValidationResult:
    """
    Validate AIH registration input.

    Returns every violation found rather than stopping at the first.
    """
    attendances = normalize_attendances(data.get("atendimentos"))

    result = _collect(
        AuditRuleValidator.validate_aih_number(data.get("numero_aih")),
        AuditRuleValidator.validate_initial_value(data.get("valor_inicial")),
        AuditRuleValidator.validate_competence(data.get("competencia")),
        AuditRuleValidator.validate_attendances(attendances),
    )
    if result.warnings:
        logger.info(f"AIH {data.get('numero_aih')} validation warnings: {'; '.join(result.warnings)}")
    return result


def validate_movement(data: Mapping[str, Any]) -> ValidationResult:
    """Validate movement input fields (type, status, value, competence)."""
    return _collect(
        AuditRuleValidator.validate_movement_type(data.get("tipo")),
        AuditRuleValidator.validate_status(data.get("status_aih")),
        AuditRuleValidator.validate_account_value(data.get("valor_conta")),
        AuditRuleValidator.validate_competence(data.get("competencia"), required=False),
    )


def validate_professionals(data: Mapping[str, Any]) -> ValidationResult:
    """Nursing is always required; so is medicine or maxillofacial surgery."""
    errors = []

    if is_blank(data.get(ProfessionalField.NURSING.value)):
        errors.append("Nursing professional is required")

    if is_blank(data.get(ProfessionalField.MEDICINE.value)) and is_blank(
        data.get(ProfessionalField.MAXILLOFACIAL.value)
    ):
        errors.append("At least one medicine or maxillofacial surgery professional is required")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=[])


def validate_justification(justificativa: Optional[str]) -> ValidationResult:
    if justificativa is None or len(str(justificativa).strip()) < MIN_JUSTIFICATION_LENGTH:
        return ValidationResult(
            is_valid=False,
            errors=[f"Justification must be at least {MIN_JUSTIFICATION_LENGTH} characters"],
            warnings=[],
        )
    return ValidationResult(is_valid=True, errors=[], warnings=[])


def validate_glosa(data: Mapping[str, Any]) -> ValidationResult:
    """Line, type and professional are required; quantity defaults to 1."""
    errors = []

    for field, label in (("linha", "Line"), ("tipo", "Type"), ("profissional", "Professional")):
        if is_blank(data.get(field)):
            errors.append(f"{label} is required")

    quantidade = data.get("quantidade")
    if quantidade is not None:
        amount = _to_int(quantidade)
        if amount is None or amount < 1:
            errors.append("Quantity must be at least 1")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=[])
