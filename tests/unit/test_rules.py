from pathlib import Path

import pytest

from emgurus.rules.loader import load_rules


def test_project_rules_load(rules):
    assert rules.project.slug == "emgurus-review"
    assert "review:publish" in rules.rbac.roles["admin"]
    assert "review:publish" not in rules.rbac.roles["user"]


def test_every_event_has_a_template(rules):
    for event_type in (
        "item_submitted",
        "review_assigned",
        "changes_requested",
        "item_rejected",
        "item_published",
        "flag_assigned",
        "flag_resolved",
    ):
        assert event_type in rules.notifications.templates


def test_notes_required_for_negative_decisions(rules):
    assert set(rules.review.note_required_for) == {"request_changes", "reject"}


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_rules(Path("does-not-exist.yaml"))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("project: [unclosed")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_rules(path)


def test_schema_violation(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("project:\n  slug: x\n")
    with pytest.raises(ValueError, match="validation failed"):
        load_rules(path)


def test_rules_embedded_in_markdown(tmp_path):
    source = Path("rules.yaml").read_text()
    path = tmp_path / "rules.md"
    path.write_text(f"# Rules\n\n```yaml\n{source}\n```\n\nTrailing notes.\n")

    assert load_rules(path).project.slug == "emgurus-review"
