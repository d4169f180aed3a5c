"""
Best-effort front matter for Markdown documents: a YAML block delimited by `---`
lines at the very top of the file.

Parsing never fails. Content without a complete front matter block, or with YAML
that doesn't parse to a mapping, is treated as all body.
"""

from dataclasses import dataclass
from io import StringIO
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from mdstore.config.logger import get_logger

log = get_logger(__name__)

FM_DELIMITER = "---"

# Written first, in this order. Other keys follow alphabetically.
FM_KEY_ORDER: List[str] = ["title", "synopsis"]


def _fm_key(key: str) -> tuple:
    if key in FM_KEY_ORDER:
        return (FM_KEY_ORDER.index(key), key)
    return (len(FM_KEY_ORDER), key)


def _fm_yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.default_flow_style = False

    def represent_metadata(dumper, data):
        ordered = {k: data[k] for k in sorted(data, key=_fm_key) if data[k] is not None}
        return dumper.represent_dict(ordered)

    yaml.representer.add_representer(dict, represent_metadata)
    yaml.representer.sort_base_mapping_type_on_output = False
    return yaml


@dataclass(frozen=True)
class FrontMatterSplit:
    front_matter: Optional[Dict[str, Any]]
    body: str
    raw: Optional[str] = None


def split_front_matter(content: str) -> FrontMatterSplit:
    lines = content.split("\n")
    if len(lines) < 3 or lines[0].strip() != FM_DELIMITER:
        return FrontMatterSplit(front_matter=None, body=content)

    end_index = next(
        (i for i in range(1, len(lines)) if lines[i].strip() == FM_DELIMITER), None
    )
    if end_index is None:
        return FrontMatterSplit(front_matter=None, body=content)

    raw = "\n".join(lines[: end_index + 1])
    body = "\n".join(lines[end_index + 1 :]).strip()

    try:
        parsed = _fm_yaml().load("\n".join(lines[1:end_index]))
    except YAMLError as e:
        log.debug("Ignoring unparsable front matter: %s", e)
        parsed = None

    front_matter = dict(parsed) if isinstance(parsed, dict) and parsed else None
    return FrontMatterSplit(front_matter=front_matter, body=body, raw=raw)


def synopsis_of(front_matter: Optional[Dict[str, Any]]) -> Optional[str]:
    if not front_matter or front_matter.get("synopsis") is None:
        return None
    return str(front_matter["synopsis"])


def with_front_matter(metadata: Dict[str, Any], body: str) -> str:
    """
    Compose document content from metadata and a body.
    """
    if not metadata:
        return body
    stream = StringIO()
    _fm_yaml().dump(metadata, stream)
    yaml_text = stream.getvalue()
    return f"{FM_DELIMITER}\n{yaml_text}{FM_DELIMITER}\n\n{body}"


## Tests


def test_split_front_matter():
    content = with_front_matter({"synopsis": "Token auth", "title": "JWT"}, "# JWT\n\nBody.\n")
    assert content.startswith("---\ntitle: JWT\nsynopsis: Token auth\n---\n")
    assert with_front_matter({"tags": "auth", "draft": None, "title": "T"}, "x") == (
        "---\ntitle: T\ntags: auth\n---\n\nx"
    )
    split = split_front_matter(content)
    assert split.front_matter == {"title": "JWT", "synopsis": "Token auth"}
    assert split.body == "# JWT\n\nBody."
    assert synopsis_of(split.front_matter) == "Token auth"

    plain = "# Just a heading\n"
    assert split_front_matter(plain) == FrontMatterSplit(front_matter=None, body=plain)

    unterminated = "---\ntitle: x\nno end\n"
    assert split_front_matter(unterminated).front_matter is None
    assert split_front_matter(unterminated).body == unterminated

    broken = "---\ntitle: [unclosed\n---\nbody"
    split = split_front_matter(broken)
    assert split.front_matter is None
    assert split.body == "body"
    assert synopsis_of(None) is None
