"""Update-check descriptor (``update.xml``) generation."""

from __future__ import annotations

from xml.sax.saxutils import escape

from crxpack.errors import ConfigurationError

UPDATE_NAMESPACE = "http://www.google.com/update2/response"

_TEMPLATE = (
    "<?xml version='1.0' encoding='UTF-8'?>\n"
    "<gupdate xmlns='{namespace}' protocol='2.0'>\n"
    "  <app appid='{app_id}'>\n"
    "    <updatecheck codebase='{codebase}' version='{version}' />\n"
    "  </app>\n"
    "</gupdate>"
)


def _attr(value: str) -> str:
    return escape(value, {"'": "&apos;", '"': "&quot;"})


def render_update_xml(app_id: str, codebase: str | None, version: str | None) -> bytes:
    """Render the gupdate document pointing at *codebase* for *version*.

    Raises:
        ConfigurationError: if *codebase* or *version* is missing.
    """
    if not codebase:
        raise ConfigurationError("No URL provided for update.xml.")
    if not version:
        raise ConfigurationError("Manifest has no version for update.xml.")
    document = _TEMPLATE.format(
        namespace=UPDATE_NAMESPACE,
        app_id=_attr(app_id),
        codebase=_attr(codebase),
        version=_attr(version),
    )
    return document.encode("utf-8")


__all__ = ["UPDATE_NAMESPACE", "render_update_xml"]
