"""
Section validation gating submission.
"""
from admissions.core.entities.draft import FormSection
from admissions.core.use_cases.validation import validate_application, validate_section


class TestValidation:

    def test_complete_form_passes(self, complete_form):
        assert validate_application(complete_form).ok

    def test_errors_grouped_by_section(self, complete_form):
        complete_form["firstName"] = " "
        complete_form["preferredIntake"] = ""
        report = validate_application(complete_form)
        errors = report.as_dict()
        assert set(errors) == {"personal", "program"}
        assert errors["personal"][0]["field"] == "firstName"
        assert errors["program"][0]["field"] == "preferredIntake"

    def test_email_and_phone_format(self, complete_form):
        complete_form["email"] = "not-an-email"
        complete_form["phone"] = "12"
        fields = [e.field for e in validate_section(FormSection.PERSONAL, complete_form).errors[FormSection.PERSONAL]]
        assert fields == ["email", "phone"]

    def test_optional_sponsor_fields_checked_only_when_present(self, complete_form):
        assert validate_section(FormSection.ADDITIONAL, complete_form).ok
        complete_form["sponsorEmail"] = "sponsor@"
        assert not validate_section(FormSection.ADDITIONAL, complete_form).ok

    def test_empty_form_lists_every_required_field(self):
        errors = validate_application({}).as_dict()
        assert len(errors["personal"]) == 6
        assert len(errors["program"]) == 3
        assert "additional" not in errors
