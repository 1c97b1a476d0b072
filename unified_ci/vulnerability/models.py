"""Dependency ecosystems and scanner findings."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Ecosystem(str, Enum):
    """Dependency ecosystems probed in a working copy, in probing order.

    The value is the tag understood by the scanner.
    """

    GOLANG = "golang"
    PHP = "php"
    NODEJS = "nodejs"

    @property
    def manifest(self) -> str:
        """Canonical manifest filename of the ecosystem."""
        return _MANIFESTS[self]


_MANIFESTS = {
    Ecosystem.GOLANG: "go.sum",
    Ecosystem.PHP: "composer.lock",
    Ecosystem.NODEJS: "package.json",
}


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ").strip() or "-"


class Finding(BaseModel):
    """One vulnerability reported by the scanner for a dependency."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    package: str
    version: str = ""
    vulnerability_id: str = Field(default="", alias="id")
    title: str = ""
    severity: str = ""
    fixed_version: str = ""
    reference_url: str = Field(default="", alias="url")
    ecosystem: Ecosystem | None = None

    def md_title(self) -> str:
        """Markdown table header the rows of :meth:`md_table_row` belong to."""
        return (
            "| Package | Version | Vulnerability | Severity | Fixed Version |\n"
            "| --- | --- | --- | --- | --- |\n"
        )

    def md_table_row(self) -> str:
        """This finding as one Markdown table row."""
        vulnerability = _cell(self.vulnerability_id or self.title)
        if self.reference_url:
            vulnerability = f"[{vulnerability}]({self.reference_url})"
        return (
            f"| {_cell(self.package)} | {_cell(self.version)} | {vulnerability} "
            f"| {_cell(self.severity)} | {_cell(self.fixed_version)} |\n"
        )
