"""
Seeds predetermined pages (style guide, sample content) into the website

Each bundled HTML template becomes a private child page of an index page.
Existing pages are only overwritten after confirmation, or with --force.
"""

import html
import json
import re
import tempfile
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional

import click

from nebula_tools.config_yaml import get_yaml_config
from nebula_tools.utils.wp_cli import get_wp_path, run_wp_cli

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

# Templates that get generated content appended
SPECIAL_INSERTS = {
    "patterns.html": "theme_patterns",
}

PARENT_INTRO = (
    '<!-- wp:paragraph {"className":""} -->'
    "<p>This page and its children serve the purpose of allowing the website's team to validate "
    "the website's styles and content blocks. They are automatically generated so if you edit them "
    "please be aware that the changes may be overwritten in the future.</p>"
    "<!-- /wp:paragraph -->"
)

NO_PATTERNS = (
    '<!-- wp:paragraph {"className":""} --><p>This website has no patterns.</p><!-- /wp:paragraph -->'
)

PATTERNS_EVAL = (
    "echo wp_json_encode(array_values("
    "WP_Block_Patterns_Registry::get_instance()->get_all_registered()));"
)


class ContentTemplate(NamedTuple):
    filename: str
    path: Path
    slug: str
    title: str
    special_insert: Optional[str]


def make_title(basename: str) -> str:
    """
    Turns a file name into a page title: "buttons-and_links" -> "Buttons And Links"
    """
    words = re.sub(r"[^a-zA-Z0-9]+", " ", basename).split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


def load_templates(directory: Path) -> List[ContentTemplate]:
    templates = []
    for path in sorted(directory.glob("*.html")):
        templates.append(ContentTemplate(
            filename=path.name,
            path=path,
            slug=path.stem,
            title=make_title(path.stem),
            special_insert=SPECIAL_INSERTS.get(path.name),
        ))
    return templates


def render_patterns(patterns: List[dict]) -> str:
    """
    Renders every registered block pattern under its own heading
    """
    if not patterns:
        return NO_PATTERNS

    markup = ""
    for pattern in patterns:
        title = html.escape(pattern.get("title") or pattern.get("name", ""))
        markup += (
            '<!-- wp:heading {"level":2,"className":""} -->'
            f'<h2 class="wp-block-heading">{title}</h2>'
            "<!-- /wp:heading -->"
        )
        if pattern.get("description"):
            markup += (
                '<!-- wp:paragraph {"className":""} -->'
                f"<p>{html.escape(pattern['description'])}</p>"
                "<!-- /wp:paragraph -->"
            )
        markup += "\n" + pattern.get("content", "") + "\n"
    return markup


def render_parent_links(pages: List[dict]) -> str:
    content = PARENT_INTRO
    content += '<!-- wp:list {"className":""} --><ul>'
    for page in pages:
        url = html.escape(page.get("url", ""), quote=True)
        title = html.escape(page.get("post_title", ""))
        content += (
            '<!-- wp:list-item {"className":""} -->'
            f'<li><a href="{url}">{title}</a></li>'
            "<!-- /wp:list-item -->"
        )
    content += "</ul><!-- /wp:list -->"
    return content


class ContentSeeder:
    """
    Creates or overwrites a set of pages from bundled templates
    """

    def __init__(self, template_dir: Path, parent_slug: str, parent_title: str,
                 force: bool = False, wp_path: Optional[Path] = None,
                 confirm: Optional[Callable[[str], bool]] = None):
        self.template_dir = template_dir
        self.parent_slug = parent_slug
        self.parent_title = parent_title
        self.force = force
        self.wp_path = wp_path
        self.confirm = confirm or (lambda message: click.confirm(message, default=True))

    def find_page(self, slug: str) -> Optional[int]:
        result = run_wp_cli([
            "post", "list",
            "--post_type=page",
            f"--name={slug}",
            "--post_status=publish,private,draft",
            "--format=ids",
        ], self.wp_path)
        if not result.ok:
            raise RuntimeError(f"Could not look up page /{slug}: {result.output}")

        ids = result.stdout.split()
        return int(ids[0]) if ids else None

    def create_page(self, slug: str) -> int:
        result = run_wp_cli([
            "post", "create",
            "--post_type=page",
            f"--post_name={slug}",
            "--post_status=private",
            "--porcelain",
        ], self.wp_path)
        if not result.ok or not result.stdout.strip().isdigit():
            raise RuntimeError(f"Could not create page /{slug}: {result.output}")
        return int(result.stdout.strip())

    def get_page(self, slug: str) -> Optional[int]:
        """
        Loads or creates a page, asking before an existing one is reused

        Returns:
            Optional[int]: The page ID, or None if the user chose to skip it
        """
        page_id = self.find_page(slug)
        if page_id is None:
            print(f"✅ Creating /{slug}")
            return self.create_page(slug)

        if not self.force:
            if not self.confirm(f"Page \"/{slug}\" already exists. Overwrite with new content?"):
                print(f" ... Skipping /{slug}")
                return None

        return page_id

    def update_page(self, page_id: int, content: str, **fields) -> None:
        """
        Updates a page's content and fields
        """
        with tempfile.NamedTemporaryFile("w", suffix=".html", delete=False) as content_file:
            content_file.write(content)
            content_path = Path(content_file.name)

        try:
            args = ["post", "update", str(page_id), str(content_path)]
            args.extend(f"--{name}={value}" for name, value in fields.items())
            result = run_wp_cli(args, self.wp_path)
        finally:
            content_path.unlink()

        if not result.ok:
            raise RuntimeError(f"Could not update page {page_id}: {result.output}")

    def theme_patterns(self) -> str:
        result = run_wp_cli(["eval", PATTERNS_EVAL], self.wp_path)
        if not result.ok:
            raise RuntimeError(f"Could not read the registered patterns: {result.output}")
        try:
            patterns = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Could not parse the registered patterns: {e}") from e
        return render_patterns(patterns)

    def prepare_parent_page(self) -> int:
        parent_id = self.find_page(self.parent_slug)
        if parent_id is None:
            parent_id = self.create_page(self.parent_slug)
        return parent_id

    def child_pages(self, parent_id: int) -> List[dict]:
        result = run_wp_cli([
            "post", "list",
            "--post_type=page",
            f"--post_parent={parent_id}",
            "--post_status=publish,private",
            "--orderby=title",
            "--order=ASC",
            "--fields=ID,post_title,url",
            "--format=json",
        ], self.wp_path)
        if not result.ok:
            raise RuntimeError(f"Could not list the child pages: {result.output}")
        return json.loads(result.stdout or "[]")

    def seed(self) -> bool:
        """
        Seeds every template, then rebuilds the parent page's index

        Returns:
            bool: True when the run completed
        """
        templates = load_templates(self.template_dir)
        if not templates:
            print(f"❌ Error: No templates found in {self.template_dir}")
            return False

        try:
            parent_id = self.prepare_parent_page()

            for template in templates:
                page_id = self.get_page(template.slug)
                if page_id is None:
                    continue

                content = template.path.read_text()
                if template.special_insert == "theme_patterns":
                    content += self.theme_patterns()

                self.update_page(
                    page_id,
                    content,
                    post_parent=parent_id,
                    post_status="private",
                    post_title=template.title,
                )
                print(f"✅ Updated /{template.slug}")

            self.update_page(
                parent_id,
                render_parent_links(self.child_pages(parent_id)),
                post_parent=0,
                post_status="private",
                post_title=self.parent_title,
            )
        except RuntimeError as e:
            print(f"❌ Error: {e}")
            return False

        return True


def seed_style_guide(force: bool = False) -> bool:
    config = get_yaml_config()
    seeder = ContentSeeder(
        TEMPLATES_DIR / "style-guide",
        parent_slug="styleguide",
        parent_title="Style Guide",
        force=force,
        wp_path=get_wp_path(config.project_root),
    )
    return seeder.seed()


def seed_sample_content(force: bool = False) -> bool:
    config = get_yaml_config()
    seeder = ContentSeeder(
        TEMPLATES_DIR / "sample-content",
        parent_slug="sample-content",
        parent_title="Sample Content",
        force=force,
        wp_path=get_wp_path(config.project_root),
    )
    return seeder.seed()
