"""
Built-in codecs for reactive_file.

Formats installed into the default registry:

- json: stdlib json, pretty printed
- yaml / yml: PyYAML safe_load / safe_dump
- toml: stdlib tomllib to read, tomli_w to write
- xml / xaml: xml.etree.ElementTree <-> nested dicts

XML mapping:
    <config version="2"><name>app</name><port>80</port><port>81</port></config>
    <-> {"config": {"@_version": 2, "name": "app", "port": [80, 81]}}

    Attributes use the "@_" key prefix, mixed text lives under "#text",
    repeated tags collapse into lists. Numeric text is read back as int or
    float; booleans are written as "true"/"false" and read back as strings.
"""

import json
import re
import tomllib
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING, Any, Dict

import tomli_w
import yaml

if TYPE_CHECKING:
    from .codecs import CodecRegistry

XML_ATTRIBUTE_PREFIX = "@_"
XML_TEXT_KEY = "#text"

_INT_RE = re.compile(r"^[+-]?(0|[1-9][0-9]*)$")
_FLOAT_RE = re.compile(r"^[+-]?(0|[1-9][0-9]*)?\.[0-9]+([eE][+-]?[0-9]+)?$")


# ============================================================================
# JSON
# ============================================================================


def decode_json(text: str) -> Any:
    return json.loads(text)


def encode_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False) + "\n"


# ============================================================================
# YAML
# ============================================================================


def decode_yaml(text: str) -> Any:
    value = yaml.safe_load(text)
    # An empty document is an empty mapping, not None
    return {} if value is None else value


def encode_yaml(value: Any) -> str:
    return yaml.safe_dump(value, sort_keys=False, allow_unicode=True)


# ============================================================================
# TOML
# ============================================================================


def decode_toml(text: str) -> Any:
    return tomllib.loads(text)


def encode_toml(value: Any) -> str:
    if not isinstance(value, dict):
        raise TypeError(
            f"TOML documents need a table at the root, got {type(value).__name__}"
        )
    return tomli_w.dumps(value)


# ============================================================================
# XML
# ============================================================================


def _coerce_text(text: str) -> Any:
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return text


def _element_to_value(element: ET.Element) -> Any:
    children = list(element)
    text = (element.text or "").strip()

    if not children and not element.attrib:
        return _coerce_text(text) if text else None

    result: Dict[str, Any] = {
        XML_ATTRIBUTE_PREFIX + name: _coerce_text(raw)
        for name, raw in element.attrib.items()
    }
    if text:
        result[XML_TEXT_KEY] = _coerce_text(text)

    for child in children:
        value = _element_to_value(child)
        if child.tag not in result:
            result[child.tag] = value
        elif isinstance(result[child.tag], list):
            result[child.tag].append(value)
        else:
            result[child.tag] = [result[child.tag], value]
    return result


def decode_xml(text: str) -> Any:
    root = ET.fromstring(text)
    return {root.tag: _element_to_value(root)}


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _fill_element(element: ET.Element, content: Any) -> None:
    if isinstance(content, dict):
        for key, item in content.items():
            if not isinstance(key, str):
                raise TypeError(f"XML element names must be strings, got {key!r}")
            if key.startswith(XML_ATTRIBUTE_PREFIX):
                element.set(key[len(XML_ATTRIBUTE_PREFIX) :], _format_scalar(item))
            elif key == XML_TEXT_KEY:
                element.text = _format_scalar(item)
            elif isinstance(item, list):
                for entry in item:
                    _fill_element(ET.SubElement(element, key), entry)
            else:
                _fill_element(ET.SubElement(element, key), item)
    elif isinstance(content, list):
        raise ValueError("Nested lists have no XML representation")
    elif content is not None:
        element.text = _format_scalar(content)


def encode_xml(value: Any) -> str:
    if not isinstance(value, dict) or len(value) != 1:
        raise ValueError("XML documents need exactly one root element")
    ((tag, content),) = value.items()
    if isinstance(content, list):
        raise ValueError("XML documents need exactly one root element")
    root = ET.Element(tag)
    _fill_element(root, content)
    ET.indent(root)
    return ET.tostring(root, encoding="unicode") + "\n"


def install_builtin_codecs(registry: "CodecRegistry") -> None:
    """Register json, yaml/yml, toml and xml/xaml on registry."""
    registry.register("json", decode_json, encode_json)
    registry.register("yaml", decode_yaml, encode_yaml)
    registry.alias("yml", "yaml")
    registry.register("toml", decode_toml, encode_toml)
    registry.register("xml", decode_xml, encode_xml)
    registry.alias("xaml", "xml")
