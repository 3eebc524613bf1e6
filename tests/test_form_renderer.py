"""
Tests for form rendering.
"""

import pytest

from widget_runtime.schemas.form import FormSchema
from widget_runtime.services.form_renderer import render_form, render_form_text
from widget_runtime.services.form_validator import FormSession


@pytest.fixture
def session(contact_form):
    contact_form["fields"].extend([
        {"id": "phone", "type": "phone", "label": "Phone"},
        {"id": "topic", "type": "select", "label": "Topic", "options": ["Sales", "Support"]},
        {"id": "extras", "type": "checkbox", "label": "Extras", "options": ["A", "B"]},
    ])
    contact_form["require_terms_acceptance"] = True
    contact_form["terms_and_conditions"] = "No spam"
    return FormSession(FormSchema.model_validate(contact_form))


class TestRenderForm:

    def test_fields_in_declaration_order(self, session):
        html = str(render_form(session))

        positions = [html.index(f'data-field-id="{field_id}"') for field_id in ("name", "email", "phone", "topic", "extras")]
        assert positions == sorted(positions)
        assert 'type="tel"' in html
        assert "Contact us" in html
        assert "No spam" in html

    def test_values_and_errors(self, session):
        session.set_value("name", "Al")
        session.set_value("topic", "Support")
        session.toggle_option("extras", "B")
        session.validate()

        html = str(render_form(session))

        assert 'value="Al"' in html
        assert '<option value="Support" selected>' in html
        assert 'value="B" checked' in html
        assert "Name must be at least 3 characters" in html
        assert "You must accept the terms and conditions to proceed" in html

    def test_values_are_escaped(self, session):
        session.set_value("name", '"><script>')

        html = str(render_form(session))

        assert "<script>" not in html

    def test_submitting_disables_button(self, session):
        html = str(render_form(session, theme_color="#112233", submitting=True))

        assert "Submitting..." in html
        assert " disabled" in html
        assert "background: #112233;" in html


class TestRenderFormText:

    def test_lists_fields_and_errors(self, session):
        session.validate()

        text = render_form_text(session)

        assert text.splitlines()[0] == "Contact us"
        assert "  1. Name * (text)" in text
        assert "  4. Topic (select) [Sales, Support]" in text
        assert "     ! Email is required" in text
