from datetime import datetime, timezone
import pytest
from pubgate.mf2 import Entry
from pubgate.storage.posts import (
    PostLayout,
    entry_to_post,
    is_deleted,
    parse_post,
    post_to_entry,
    render_post,
    slugify,
)

PUBLISHED = datetime(2024, 3, 9, 10, 0, 0, tzinfo=timezone.utc)


def test_render_frontmatter():
    entry = Entry(
        ["h-entry"],
        {
            "name": ["Hello"],
            "content": ["Body text"],
            "category": ["a", "b"],
            "in-reply-to": ["https://x.example/1"],
            "published": [PUBLISHED.isoformat()],
            "mp-slug": ["custom"],
        },
    )
    text = render_post(entry_to_post(entry, base={"slug": "custom"}))
    assert text.startswith("+++\n")
    assert 'title = "Hello"' in text
    assert 'slug = "custom"' in text
    assert "date = 2024-03-09T10:00:00" in text
    assert "[taxonomies]" in text
    assert 'tag = ["a", "b"]' in text
    assert "[extra]" in text
    assert 'in_reply_to = ["https://x.example/1"]' in text
    assert "mp-slug" not in text and "mp_slug" not in text
    assert text.endswith("+++\n\nBody text\n")

    back = post_to_entry(parse_post(text))
    assert back.type == ["h-entry"]
    assert back.properties == {
        "name": ["Hello"],
        "content": ["Body text"],
        "category": ["a", "b"],
        "in-reply-to": ["https://x.example/1"],
        "published": [PUBLISHED.isoformat()],
    }


def test_parse_hand_written_post():
    text = (
        "+++\n"
        'title = "Handmade"\n'
        "date = 2020-01-02T03:04:05Z\n"
        'template = "page.html"\n'
        "\n"
        "[extra]\n"
        'like_of = "https://liked.example/"\n'
        "+++\n"
        "\n"
        "Written by hand.\n"
    )
    entry = post_to_entry(parse_post(text))
    assert entry.properties["name"] == ["Handmade"]
    assert entry.properties["published"] == ["2020-01-02T03:04:05+00:00"]
    assert entry.properties["like-of"] == ["https://liked.example/"]
    assert entry.properties["content"] == ["Written by hand."]
    assert not is_deleted(parse_post(text))


def test_html_content():
    entry = Entry(["h-entry"], {"content": [{"html": "<p>Hi</p>", "value": "Hi"}]})
    post = entry_to_post(entry)
    assert post[1] == "Hi"
    assert post[0]["extra"]["content_html"] == "<p>Hi</p>"
    assert post_to_entry(post).properties["content"] == [{"html": "<p>Hi</p>", "value": "Hi"}]


def test_other_types_are_remembered():
    entry = Entry(["h-event"], {"name": ["Party"], "start": ["2024-05-01"]})
    back = post_to_entry(parse_post(render_post(entry_to_post(entry))))
    assert back.type == ["h-event"]
    assert back.properties["start"] == ["2024-05-01"]


def test_nested_objects_and_nulls():
    card = {"type": ["h-card"], "properties": {"name": ["Someone"], "url": ["https://someone.example/"]}}
    entry = Entry(["h-entry"], {"content": ["hi"], "author": [card], "location": [None]})
    back = post_to_entry(parse_post(render_post(entry_to_post(entry))))
    assert back.properties["author"] == [card]
    assert "location" not in back.properties


def test_deleted_marks_draft():
    post = entry_to_post(Entry(["h-entry"], {"content": ["hi"]}), deleted=True)
    assert is_deleted(post)
    assert post[0].unwrap()["draft"] is True
    restored = entry_to_post(post_to_entry(post), base=post[0])
    assert not is_deleted(restored)
    assert "draft" not in restored[0]


def test_draft_post_status():
    post = entry_to_post(Entry(["h-entry"], {"content": ["hi"], "post-status": ["draft"]}))
    assert post[0].unwrap()["draft"] is True


def test_base_keys_survive():
    base = {
        "slug": "kept",
        "template": "page.html",
        "title": "Old title",
        "taxonomies": {"series": ["x"], "tag": ["old"]},
    }
    (fm, _) = entry_to_post(Entry(["h-entry"], {"content": ["hi"], "category": ["new"]}), base=base)
    assert fm["slug"] == "kept"
    assert fm["template"] == "page.html"
    assert "title" not in fm
    assert fm["taxonomies"]["series"] == ["x"]
    assert fm["taxonomies"]["tag"] == ["new"]


@pytest.mark.parametrize(
    "text,slug",
    [
        ("Hello, World!", "hello-world"),
        ("Héllo  wörld", "hello-world"),
        ("  --dashes__and spaces-- ", "dashes-and-spaces"),
        ("!!!", ""),
    ],
)
def test_slugify(text, slug):
    assert slugify(text) == slug


@pytest.mark.parametrize(
    "props,section",
    [
        ({"name": ["Title"], "content": ["x"]}, "articles"),
        ({"in-reply-to": ["https://x.example/"], "content": ["x"]}, "replies"),
        ({"like-of": ["https://x.example/"]}, "likes"),
        ({"photo": ["https://example.com/media/a.jpg"]}, "photos"),
        ({"photo": ["https://example.com/media/a.jpg"], "content": ["x"]}, "notes"),
        ({"content": ["x"]}, "notes"),
    ],
)
def test_section_for(props, section):
    assert PostLayout("https://example.com/").section_for(Entry(["h-entry"], props)) == section


def test_slug_for():
    layout = PostLayout("https://example.com/")
    assert layout.slug_for(Entry(["h-entry"], {"mp-slug": ["My Slug"], "name": ["Name"]}), PUBLISHED) == "my-slug"
    assert layout.slug_for(Entry(["h-entry"], {"name": ["A Title"]}), PUBLISHED) == "a-title"
    assert layout.slug_for(Entry(["h-entry"], {"content": ["x"]}), PUBLISHED) == "2024-03-09-10-00-00"


def test_candidates():
    layout = PostLayout("https://example.com/")
    candidates = list(layout.candidates(Entry(["h-entry"], {"name": ["Hi"]}), PUBLISHED))
    assert candidates[0] == ("hi", "content/articles/hi.md", "https://example.com/articles/hi")
    assert candidates[1] == ("hi-1", "content/articles/hi-1.md", "https://example.com/articles/hi-1")
    assert len(candidates) == 100


@pytest.mark.parametrize(
    "url,path",
    [
        ("https://example.com/notes/x", "content/notes/x.md"),
        ("https://example.com/notes/x/", "content/notes/x.md"),
        ("https://EXAMPLE.com/notes/x", "content/notes/x.md"),
        ("https://other.example/notes/x", None),
        ("http://example.com/notes/x", None),
        ("https://example.com/", None),
        ("https://example.com/../etc/passwd", None),
        ("https://example.com/notes/../../secret", None),
    ],
)
def test_url_to_path(url, path):
    assert PostLayout("https://example.com/").url_to_path(url) == path


def test_url_to_path_under_site_prefix():
    layout = PostLayout("https://example.com/blog", path_prefix="")
    assert layout.url_to_path("https://example.com/blog/notes/x") == "notes/x.md"
    assert layout.url_to_path("https://example.com/notes/x") is None
    assert layout.url_for("notes", "x") == "https://example.com/blog/notes/x"
