import pytest

from waiver_app.exceptions import NotFoundException
from waiver_app.schemas.waiver import WaiverTemplateUpdate
from waiver_app.services import template_versions, waiver_templates
from conftest import ORG_ID, WAIVER_BODY


def test_creating_template_records_version_one(db_session, template_factory):
    tpl = template_factory()
    versions = template_versions.list_versions(db_session, tpl.id)
    assert tpl.current_version == 1
    assert [v.version for v in versions] == [1]
    assert versions[0].content_snapshot == WAIVER_BODY
    assert versions[0].created_by == "staff-1"


def test_content_edit_appends_version_and_keeps_history(db_session, template_factory):
    tpl = template_factory()
    new_content = WAIVER_BODY + "<p>Sparring requires a mouthguard.</p>"
    waiver_templates.update_template(db_session, ORG_ID, tpl.id, WaiverTemplateUpdate(content=new_content), "staff-2")
    waiver_templates.update_template(db_session, ORG_ID, tpl.id, WaiverTemplateUpdate(guardian_age_threshold=18))

    versions = template_versions.list_versions(db_session, tpl.id)
    assert [v.version for v in versions] == [3, 2, 1]
    assert versions[2].content_snapshot == WAIVER_BODY
    assert versions[1].content_snapshot == new_content
    assert versions[1].created_by == "staff-2"
    assert versions[0].guardian_age_threshold == 18
    db_session.refresh(tpl)
    assert tpl.current_version == 3


def test_unversioned_settings_update_in_place(db_session, template_factory):
    tpl = template_factory()
    waiver_templates.update_template(
        db_session, ORG_ID, tpl.id, WaiverTemplateUpdate(is_active=False, description="Adults", sort_order=5)
    )
    db_session.refresh(tpl)
    assert tpl.current_version == 1
    assert tpl.is_active is False
    assert tpl.description == "Adults"
    assert len(template_versions.list_versions(db_session, tpl.id)) == 1


def test_unchanged_values_do_not_create_version(db_session, template_factory):
    tpl = template_factory()
    waiver_templates.update_template(db_session, ORG_ID, tpl.id, WaiverTemplateUpdate(content=WAIVER_BODY))
    db_session.refresh(tpl)
    assert tpl.current_version == 1


def test_rename_rederives_slug(db_session, template_factory):
    tpl = template_factory(name="Adult Waiver")
    assert tpl.slug == "adult-waiver"
    waiver_templates.update_template(db_session, ORG_ID, tpl.id, WaiverTemplateUpdate(name="Kids & Teens Waiver!"))
    db_session.refresh(tpl)
    assert tpl.slug == "kids-teens-waiver"
    assert tpl.current_version == 2


def test_create_version_on_missing_template(db_session):
    with pytest.raises(NotFoundException):
        template_versions.create_version(db_session, "does-not-exist", WAIVER_BODY)


def test_soft_delete_keeps_versions(db_session, template_factory):
    tpl = template_factory()
    waiver_templates.delete_template(db_session, ORG_ID, tpl.id)
    with pytest.raises(NotFoundException):
        waiver_templates.get_template(db_session, ORG_ID, tpl.id)
    assert len(template_versions.list_versions(db_session, tpl.id)) == 1


def test_get_version(db_session, template_factory):
    tpl = template_factory()
    version = template_versions.list_versions(db_session, tpl.id)[0]
    assert template_versions.get_version(db_session, version.id).template_id == tpl.id
    with pytest.raises(NotFoundException):
        template_versions.get_version(db_session, "missing")


def test_single_default_per_organization(db_session, template_factory):
    first = template_factory(name="First", is_default=True)
    second = template_factory(name="Second", is_default=True)
    db_session.refresh(first)
    assert first.is_default is False
    assert waiver_templates.get_default_template(db_session, ORG_ID).id == second.id
