import asyncio
import json
from pathlib import Path

import pytest

from siteflow.config import SiteConfig
from siteflow.context import BuildContext
from siteflow.errors import CollaboratorError, FilesystemError, MissingSourceError
from siteflow.templates import TemplateRenderTask, _format_error_message


def create_templates(project: Path) -> None:
    templates = project / "app" / "templates"
    (templates / "layouts").mkdir(parents=True)
    (templates / "partials").mkdir()
    (templates / "pages" / "about").mkdir(parents=True)
    (project / "data.json").write_text(
        json.dumps({"title": "Siteflow", "links": ["a", "b"], "tagline": "<fast>"}),
        encoding="utf-8",
    )
    (templates / "layouts" / "base.njk").write_text(
        "<html><head><title>{{ title }}</title></head>"
        "<body>{% include 'partials/nav.njk' %}{% block content %}{% endblock %}</body></html>",
        encoding="utf-8",
    )
    (templates / "partials" / "nav.njk").write_text(
        "<ul>{% for link in links %}<li>{{ link }}</li>{% endfor %}</ul>", encoding="utf-8"
    )
    (templates / "pages" / "index.njk").write_text(
        "{% extends 'layouts/base.njk' %}{% block content %}<p>{{ tagline }}</p>"
        "<p>{{ page.url }}</p>{% endblock %}",
        encoding="utf-8",
    )
    (templates / "pages" / "about" / "team.html").write_text(
        "<h1>{{ data.title }} team</h1>", encoding="utf-8"
    )


def make_task(project: Path) -> TemplateRenderTask:
    return TemplateRenderTask(BuildContext(SiteConfig(project_root=project)))


def test_render_templates_writes_html_tree(tmp_path):
    create_templates(tmp_path)
    written = make_task(tmp_path).execute()

    app = tmp_path / "app"
    assert sorted(p.relative_to(app).as_posix() for p in written) == [
        "about/team.html",
        "index.html",
    ]
    index = (app / "index.html").read_text(encoding="utf-8")
    assert "<title>Siteflow</title>" in index
    assert "<li>a</li><li>b</li>" in index
    assert "<p>&lt;fast&gt;</p>" in index
    assert "<p>/index.html</p>" in index
    assert (app / "about" / "team.html").read_text(encoding="utf-8") == "<h1>Siteflow team</h1>"


def test_render_templates_notifies_full_reload(tmp_path):
    create_templates(tmp_path)
    task = make_task(tmp_path)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    client = GoodWS()
    task.context.broadcaster.connect(client)
    asyncio.run(task())
    assert client.messages == ['{"type": "reload"}']


def test_missing_data_file(tmp_path):
    create_templates(tmp_path)
    (tmp_path / "data.json").unlink()
    with pytest.raises(MissingSourceError):
        make_task(tmp_path).execute()


def test_data_file_that_is_not_utf8(tmp_path):
    create_templates(tmp_path)
    (tmp_path / "data.json").write_bytes(b'{"title": "caf\xe9"}')
    with pytest.raises(FilesystemError) as excinfo:
        make_task(tmp_path).execute()
    assert "data.json" in excinfo.value.message


def test_page_template_that_is_not_utf8(tmp_path):
    create_templates(tmp_path)
    (tmp_path / "app" / "templates" / "pages" / "index.njk").write_bytes(b"<p>caf\xe9</p>")
    with pytest.raises(FilesystemError) as excinfo:
        make_task(tmp_path).execute()
    assert "index.njk" in excinfo.value.message
    assert "UTF-8" in excinfo.value.message

@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_invalid_data_file(tmp_path, content):
    create_templates(tmp_path)
    (tmp_path / "data.json").write_text(content, encoding="utf-8")
    with pytest.raises(CollaboratorError) as excinfo:
        make_task(tmp_path).execute()
    assert "data.json" in excinfo.value.message


def test_template_syntax_error(tmp_path):
    create_templates(tmp_path)
    (tmp_path / "app" / "templates" / "pages" / "index.njk").write_text(
        "<p>\n{% if %}</p>", encoding="utf-8"
    )
    with pytest.raises(CollaboratorError) as excinfo:
        make_task(tmp_path).execute()
    assert "line 2" in excinfo.value.message


def test_missing_include(tmp_path):
    create_templates(tmp_path)
    (tmp_path / "app" / "templates" / "pages" / "index.njk").write_text(
        "{% include 'partials/footer.njk' %}", encoding="utf-8"
    )
    with pytest.raises(CollaboratorError) as excinfo:
        make_task(tmp_path).execute()
    assert "partials/footer.njk" in excinfo.value.message


def test_format_error_message():
    assert _format_error_message(TypeError("bad")) == "Type error: bad"
    assert _format_error_message(RuntimeError("boom")) == "RuntimeError: boom"
