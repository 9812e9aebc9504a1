"""
Section validation for submission.

Drafts may be incomplete; these checks only gate the submit step.
"""

import re
from dataclasses import dataclass, field

from admissions.core.entities.draft import FormSection

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")

REQUIRED_FIELDS: dict[FormSection, dict[str, str]] = {
    FormSection.PERSONAL: {
        "firstName": "First name",
        "lastName": "Last name",
        "email": "Email address",
        "phone": "Phone number",
        "countryOfBirth": "Country of birth",
        "gender": "Gender",
    },
    FormSection.PROGRAM: {
        "preferredProgram": "Preferred program",
        "modeOfStudy": "Mode of study",
        "preferredIntake": "Preferred intake",
    },
    FormSection.ADDITIONAL: {},
}


@dataclass
class FieldError:
    field: str
    message: str


@dataclass
class ValidationReport:
    errors: dict[FormSection, list[FieldError]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not any(self.errors.values())

    def add(self, section: FormSection, name: str, message: str) -> None:
        self.errors.setdefault(section, []).append(FieldError(name, message))

    def as_dict(self) -> dict[str, list[dict]]:
        return {
            section.value: [{"field": e.field, "message": e.message} for e in errs]
            for section, errs in self.errors.items()
            if errs
        }


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _valid_phone(value: str) -> bool:
    digits = re.sub(r"\D", "", value)
    return bool(PHONE_RE.match(value)) and 7 <= len(digits) <= 15


def validate_section(section: FormSection, form_data: dict, report: ValidationReport | None = None) -> ValidationReport:
    report = report or ValidationReport()
    for name, label in REQUIRED_FIELDS[section].items():
        if _blank(form_data.get(name)):
            report.add(section, name, f"{label} is required.")

    if section is FormSection.PERSONAL:
        email = form_data.get("email")
        if not _blank(email) and not EMAIL_RE.match(email.strip()):
            report.add(section, "email", "Enter a valid email address, e.g. name@example.com.")
        phone = form_data.get("phone")
        if not _blank(phone) and not _valid_phone(phone.strip()):
            report.add(section, "phone", "Enter a valid phone number including the country code.")

    elif section is FormSection.ADDITIONAL:
        sponsor_email = form_data.get("sponsorEmail")
        if not _blank(sponsor_email) and not EMAIL_RE.match(sponsor_email.strip()):
            report.add(section, "sponsorEmail", "Enter a valid sponsor email address or leave it empty.")
        sponsor_phone = form_data.get("sponsorTelephone")
        if not _blank(sponsor_phone) and not _valid_phone(sponsor_phone.strip()):
            report.add(section, "sponsorTelephone", "Enter a valid sponsor phone number or leave it empty.")

    return report


def validate_application(form_data: dict) -> ValidationReport:
    """Runs every section and groups the errors by section."""
    report = ValidationReport()
    for section in FormSection:
        validate_section(section, form_data, report)
    return report
