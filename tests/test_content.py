import json
from pathlib import Path

import pytest

from nebula_tools.commands.content import (
    ContentSeeder,
    TEMPLATES_DIR,
    load_templates,
    make_title,
    render_patterns,
)
from nebula_tools.utils.shell import CommandResult


class FakeWordPress:
    """
    Just enough of `wp post` and `wp eval` to seed pages
    """

    def __init__(self, pages=None, patterns=None):
        self.pages = dict(pages or {})
        self.patterns = patterns or []
        self.updates = {}
        self.next_id = 100

    def __call__(self, command, path=None, wp_binary=None, input_text=None):
        options = dict(arg[2:].split("=", 1) for arg in command if arg.startswith("--") and "=" in arg)

        if command[:2] == ["post", "list"] and "name" in options:
            page_id = self.pages.get(options["name"])
            return CommandResult(0, str(page_id) if page_id else "", "")

        if command[:2] == ["post", "list"]:
            parent = int(options["post_parent"])
            children = [
                {"ID": page_id, "post_title": update["post_title"], "url": f"https://site.test/?page_id={page_id}"}
                for page_id, update in self.updates.items()
                if int(update.get("post_parent", 0)) == parent
            ]
            return CommandResult(0, json.dumps(children), "")

        if command[:2] == ["post", "create"]:
            self.next_id += 1
            self.pages[options["post_name"]] = self.next_id
            return CommandResult(0, f"{self.next_id}\n", "")

        if command[:2] == ["post", "update"]:
            fields = dict(options)
            fields["content"] = Path(command[3]).read_text()
            self.updates[int(command[2])] = fields
            return CommandResult(0, "Success: Updated post.", "")

        if command[0] == "eval":
            return CommandResult(0, json.dumps(self.patterns), "")

        return CommandResult(1, "", f"unexpected command {command}")


@pytest.fixture
def templates(tmp_path):
    directory = tmp_path / "templates"
    directory.mkdir()
    (directory / "buttons.html").write_text("<p>buttons</p>")
    (directory / "patterns.html").write_text("<p>patterns</p>")
    return directory


def _seeder(monkeypatch, templates, wordpress, force=False, answer=True):
    prompts = []

    def confirm(message):
        prompts.append(message)
        return answer

    monkeypatch.setattr("nebula_tools.commands.content.run_wp_cli", wordpress)
    seeder = ContentSeeder(templates, "styleguide", "Style Guide", force=force, confirm=confirm)
    return seeder, prompts


def test_make_title():
    assert make_title("buttons-and_links") == "Buttons And Links"
    assert make_title("frequently-asked-questions") == "Frequently Asked Questions"


def test_load_templates_is_sorted_and_marks_patterns(templates):
    loaded = load_templates(templates)

    assert [template.slug for template in loaded] == ["buttons", "patterns"]
    assert loaded[0].special_insert is None
    assert loaded[1].special_insert == "theme_patterns"


def test_bundled_templates_exist():
    assert load_templates(TEMPLATES_DIR / "style-guide")
    assert load_templates(TEMPLATES_DIR / "sample-content")


def test_render_patterns():
    assert "This website has no patterns." in render_patterns([])

    markup = render_patterns([{"title": "Hero <wide>", "description": "A banner", "content": "<!-- wp:cover /-->"}])
    assert "Hero &lt;wide&gt;" in markup
    assert "<p>A banner</p>" in markup
    assert "<!-- wp:cover /-->" in markup


def test_missing_pages_are_created_without_prompting(monkeypatch, templates):
    wordpress = FakeWordPress()
    seeder, prompts = _seeder(monkeypatch, templates, wordpress)

    assert seeder.seed() is True

    assert prompts == []
    assert set(wordpress.pages) == {"styleguide", "buttons", "patterns"}
    parent_id = wordpress.pages["styleguide"]
    buttons = wordpress.updates[wordpress.pages["buttons"]]
    assert buttons["post_title"] == "Buttons"
    assert buttons["post_status"] == "private"
    assert buttons["post_parent"] == str(parent_id)
    assert buttons["content"] == "<p>buttons</p>"


def test_patterns_page_gets_registered_patterns(monkeypatch, templates):
    wordpress = FakeWordPress(patterns=[{"name": "pulsar/hero", "title": "Hero", "content": "<!-- hero -->"}])
    seeder, _ = _seeder(monkeypatch, templates, wordpress)

    seeder.seed()

    content = wordpress.updates[wordpress.pages["patterns"]]["content"]
    assert content.startswith("<p>patterns</p>")
    assert "Hero" in content
    assert "<!-- hero -->" in content


def test_parent_page_links_to_children(monkeypatch, templates):
    wordpress = FakeWordPress()
    seeder, _ = _seeder(monkeypatch, templates, wordpress)

    seeder.seed()

    parent = wordpress.updates[wordpress.pages["styleguide"]]
    assert parent["post_title"] == "Style Guide"
    assert parent["post_parent"] == "0"
    assert f'?page_id={wordpress.pages["buttons"]}">Buttons</a>' in parent["content"]


def test_existing_page_prompts_and_can_be_skipped(monkeypatch, templates):
    wordpress = FakeWordPress(pages={"styleguide": 1, "buttons": 2})
    seeder, prompts = _seeder(monkeypatch, templates, wordpress, answer=False)

    assert seeder.seed() is True

    assert prompts == ['Page "/buttons" already exists. Overwrite with new content?']
    assert 2 not in wordpress.updates
    assert wordpress.pages["patterns"] in wordpress.updates


def test_existing_page_is_overwritten_after_confirmation(monkeypatch, templates):
    wordpress = FakeWordPress(pages={"styleguide": 1, "buttons": 2})
    seeder, prompts = _seeder(monkeypatch, templates, wordpress, answer=True)

    seeder.seed()

    assert len(prompts) == 1
    assert wordpress.updates[2]["content"] == "<p>buttons</p>"


def test_force_overwrites_without_prompting(monkeypatch, templates):
    wordpress = FakeWordPress(pages={"styleguide": 1, "buttons": 2, "patterns": 3})
    seeder, prompts = _seeder(monkeypatch, templates, wordpress, force=True)

    assert seeder.seed() is True

    assert prompts == []
    assert {2, 3} <= set(wordpress.updates)


def test_wp_cli_failure_stops_seeding(monkeypatch, templates, capsys):
    def broken_wp(command, path=None, wp_binary=None, input_text=None):
        return CommandResult(1, "", "Error: Error establishing a database connection.")

    seeder, _ = _seeder(monkeypatch, templates, broken_wp)

    assert seeder.seed() is False
    assert "database connection" in capsys.readouterr().out
