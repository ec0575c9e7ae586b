"""
Posts are Markdown files with TOML frontmatter in the layout Zola expects:

    +++
    title = "..."
    date = 2020-01-01T00:00:00
    slug = "..."

    [taxonomies]
    tag = ["..."]

    [extra]
    in_reply_to = ["..."]
    +++

    body

Microformats properties without a native Zola key are kept under [extra]
with dashes turned into underscores.
"""
import re
import posixpath
import unicodedata
import typing
from datetime import date, datetime
from urllib.parse import urljoin, urlparse
import tomlkit
from pubgate.mf2 import Entry

FRONTMATTER_RE = re.compile(r"^\+{3,}\s*$", re.MULTILINE)
SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
SLUG_DASH_RE = re.compile(r"[\s_-]+")

# frontmatter keys owned by the mapping, rebuilt on every write
MAPPED_KEYS = ("title", "date", "updated", "slug", "draft", "extra")
# [extra] keys that are bookkeeping, not properties
RESERVED_EXTRA = ("content_html", "deleted", "mf2_type")

Post = typing.Tuple[tomlkit.TOMLDocument, str]


def parse_post(raw_text: str) -> Post:
    _, fm_text, content_text = FRONTMATTER_RE.split(raw_text, 2)
    return (tomlkit.loads(fm_text), content_text.strip("\n"))


def render_post(post: Post) -> str:
    (fm, content_text) = post
    raw_text = "+++"
    fm_text = tomlkit.dumps(fm)
    if not fm_text.startswith("\n"):
        raw_text += "\n"
    raw_text += fm_text
    if not raw_text.endswith("\n"):
        raw_text += "\n"
    raw_text += "+++\n"
    if not content_text.startswith("\n"):
        raw_text += "\n"
    raw_text += content_text
    if not raw_text.endswith("\n"):
        raw_text += "\n"
    return raw_text


def _iso(value) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _when(value):
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


def _clean(value):
    # TOML has no null
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_clean(v) for v in value if v is not None]
    return value


def _is_table(value) -> bool:
    return isinstance(value, dict) or (
        isinstance(value, list) and len(value) > 0 and all(isinstance(v, dict) for v in value)
    )


def _ordered(items: typing.Iterable[typing.Tuple[str, typing.Any]]) -> typing.List[tuple]:
    # plain values must come before tables or they'd land inside the last table
    items = list(items)
    return [i for i in items if not _is_table(i[1])] + [i for i in items if _is_table(i[1])]


def is_deleted(post: Post) -> bool:
    (fm, _) = post
    return bool(fm.get("extra", {}).get("deleted", False))


def post_to_entry(post: Post) -> Entry:
    (fm, content_text) = post
    fm = fm.unwrap()
    props = {}
    extra = fm.get("extra", {})
    for k, v in extra.items():
        if k in RESERVED_EXTRA:
            continue
        props[k.replace("_", "-")] = v if isinstance(v, list) else [v]
    if "title" in fm:
        props["name"] = [fm["title"]]
    if "date" in fm:
        props["published"] = [_iso(fm["date"])]
    if "updated" in fm:
        props["updated"] = [_iso(fm["updated"])]
    if "taxonomies" in fm and "tag" in fm["taxonomies"]:
        props["category"] = list(fm["taxonomies"]["tag"])
    if "content_html" in extra:
        props["content"] = [{"html": extra["content_html"], "value": content_text}]
    elif len(content_text.strip()) > 0:
        props["content"] = [content_text]
    return Entry(list(extra.get("mf2_type", ["h-entry"])), props)


def entry_to_post(
    entry: Entry,
    base: typing.Optional[typing.Mapping[str, typing.Any]] = None,
    deleted: bool = False,
) -> Post:
    if isinstance(base, tomlkit.TOMLDocument):
        base = base.unwrap()
    base = base or {}
    top: typing.Dict[str, typing.Any] = {}
    extra: typing.Dict[str, typing.Any] = {}
    content_text = ""
    taxonomies = {k: v for k, v in base.get("taxonomies", {}).items() if k != "tag"}
    for k, v in base.items():
        if k not in MAPPED_KEYS and k != "taxonomies":
            top[k] = v
    if "slug" in base:
        top["slug"] = base["slug"]

    for k, v in entry.properties.items():
        v = _clean(v)
        if len(v) == 0 or k.startswith("mp-"):
            continue
        if k == "name" and len(v) == 1 and isinstance(v[0], str):
            top["title"] = v[0]
        elif k == "published":
            top["date"] = _when(v[0])
        elif k == "updated":
            top["updated"] = _when(v[0])
        elif k == "category" and all(isinstance(c, str) for c in v):
            taxonomies["tag"] = v
        elif k == "content":
            if isinstance(v[0], str):
                content_text = v[0]
            elif isinstance(v[0], dict):
                content_text = v[0].get("markdown", v[0].get("value", v[0].get("text", "")))
                if "html" in v[0]:
                    extra["content_html"] = v[0]["html"]
        else:
            extra[k.replace("-", "_")] = v

    if list(entry.type) != ["h-entry"]:
        extra["mf2_type"] = list(entry.type)
    if deleted:
        extra["deleted"] = True
    if deleted or "draft" in extra.get("post_status", []):
        top["draft"] = True
    if taxonomies:
        top["taxonomies"] = taxonomies
    if extra:
        top["extra"] = dict(_ordered(extra.items()))

    fm = tomlkit.document()
    for k, v in _ordered(top.items()):
        fm[k] = v
    return (fm, content_text or "")


def slugify(text: str, max_length: int = 60) -> str:
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = SLUG_DASH_RE.sub("-", SLUG_STRIP_RE.sub("", text.lower())).strip("-")
    return text[:max_length].rstrip("-")


class PostLayout(object):
    def __init__(self, site_url: str, path_prefix: str = "content/") -> None:
        self.site_url = site_url if site_url.endswith("/") else site_url + "/"
        self.path_prefix = path_prefix

    def section_for(self, entry: Entry) -> str:
        if entry.first("name"):
            return "articles"
        if entry.has_any("in-reply-to"):
            return "replies"
        if entry.has_any("like-of"):
            return "likes"
        if entry.has_any("photo") and not entry.has_any("content"):
            return "photos"
        return "notes"

    def slug_for(self, entry: Entry, published: datetime) -> str:
        for prop in ("mp-slug", "name"):
            value = entry.first(prop)
            if isinstance(value, str) and slugify(value):
                return slugify(value)
        return published.strftime("%Y-%m-%d-%H-%M-%S")

    def path_for(self, section: str, slug: str) -> str:
        return posixpath.join(self.path_prefix, section, slug + ".md")

    def url_for(self, section: str, slug: str) -> str:
        return urljoin(self.site_url, "{}/{}".format(section, slug))

    def candidates(
        self, entry: Entry, published: datetime
    ) -> typing.Iterator[typing.Tuple[str, str, str]]:
        section = self.section_for(entry)
        base_slug = self.slug_for(entry, published)
        yield base_slug, self.path_for(section, base_slug), self.url_for(section, base_slug)
        for n in range(1, 100):
            slug = "{}-{}".format(base_slug, n)
            yield slug, self.path_for(section, slug), self.url_for(section, slug)

    def url_to_path(self, url: str) -> typing.Optional[str]:
        parts = urlparse(url)
        site = urlparse(self.site_url)
        if parts.scheme != site.scheme or parts.netloc.lower() != site.netloc.lower():
            return None
        site_path = site.path.rstrip("/")
        path = parts.path
        if site_path and not path.startswith(site_path + "/"):
            return None
        path = posixpath.normpath(path[len(site_path):].strip("/"))
        if path in ("", ".") or path.startswith("..") or "\x00" in path:
            return None
        return posixpath.join(self.path_prefix, path + ".md")
