import pytest
from pydantic import ValidationError

from schemas.form import (
    DerivedConfig,
    FieldType,
    FormField,
    FormSchema,
    SelectOption,
    generate_field_id,
    generate_form_id,
)


@pytest.mark.unit
class TestFormField:

    def test_accepts_camel_case_keys(self):
        field = FormField.model_validate({
            "id": "total",
            "type": "number",
            "label": "Total",
            "defaultValue": 0,
            "validations": {"minLength": 1, "passwordRule": False},
            "derived": {"parentFieldIds": ["a"], "formula": "a * 2"},
        })

        assert field.default_value == 0
        assert field.validations.min_length == 1
        assert field.derived.parent_field_ids == ["a"]
        assert field.is_derived

    def test_dumps_camel_case_keys(self):
        field = FormField(id="a", label="A", default_value="x")

        data = field.model_dump(by_alias=True, exclude_none=True)

        assert data["defaultValue"] == "x"
        assert data["type"] == "text"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            FormField(id="a", type="file", label="A")

    def test_duplicate_option_values_rejected(self):
        with pytest.raises(ValidationError):
            FormField(
                id="color",
                type=FieldType.SELECT,
                label="Color",
                options=[SelectOption(value="r", label="Red"), SelectOption(value="r", label="Rouge")],
            )

    def test_negative_min_length_rejected(self):
        with pytest.raises(ValidationError):
            FormField.model_validate({"id": "a", "validations": {"minLength": -1}})

    def test_unknown_attributes_ignored(self):
        field = FormField.model_validate({"id": "a", "label": "A", "color": "blue"})

        assert not hasattr(field, "color")

    def test_is_complete_requires_label(self):
        assert FormField(id="a", label="A").is_complete
        assert not FormField(id="a", label="   ").is_complete


@pytest.mark.unit
class TestFormSchema:

    def setup_method(self):
        self.form = FormSchema(
            id="form_1",
            name="Order",
            fields=[
                FormField(id="qty", type=FieldType.NUMBER, label="Quantity"),
                FormField(id="note", label="Note"),
                FormField(
                    id="total",
                    type=FieldType.NUMBER,
                    label="Total",
                    derived=DerivedConfig(parent_field_ids=["qty"], formula="qty * 2"),
                ),
            ],
        )

    def test_lookup_helpers(self):
        assert self.form.get_field("note").label == "Note"
        assert self.form.get_field("missing") is None
        assert self.form.field_index("total") == 2
        assert self.form.field_index("missing") == -1
        assert self.form.field_ids() == ["qty", "note", "total"]

    def test_eligible_parent_fields(self):
        assert [f.id for f in self.form.eligible_parent_fields("note")] == ["qty"]
        assert [f.id for f in self.form.eligible_parent_fields()] == ["qty", "note"]

    def test_created_at_defaults_to_now(self):
        assert self.form.created_at.tzinfo is not None

    def test_generated_ids(self):
        assert generate_form_id().startswith("form_")
        field_id = generate_field_id()
        assert field_id.startswith("field_")
        assert field_id != generate_field_id()
