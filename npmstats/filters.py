"""Filtering and sorting of the package table."""

from dataclasses import dataclass, fields

from npmstats.types.packages import Package

SORTABLE_FIELDS = {f.name for f in fields(Package)}


def _threshold(value: str) -> int | None:
    value = value.strip().replace(",", "")
    if not value:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


@dataclass
class TableFilters:
    """Filter inputs of the package table.

    ``name`` matches as a case-insensitive substring. ``downloads`` and
    ``stars`` are minimum values; blank or non-numeric input disables them.
    """

    name: str = ""
    downloads: str = ""
    stars: str = ""

    @property
    def active(self) -> bool:
        return bool(self.name.strip() or self.downloads.strip() or self.stars.strip())

    def clear(self) -> None:
        self.name = ""
        self.downloads = ""
        self.stars = ""

    def update(self, name: str, downloads: str, stars: str) -> None:
        self.name = name
        self.downloads = downloads
        self.stars = stars

    def matches(self, pkg: Package) -> bool:
        needle = self.name.strip().lower()
        if needle and needle not in pkg.name.lower():
            return False

        min_downloads = _threshold(self.downloads)
        if min_downloads is not None and pkg.weekly_downloads < min_downloads:
            return False

        min_stars = _threshold(self.stars)
        if min_stars is not None and pkg.github_stars < min_stars:
            return False

        return True

    def apply(self, packages: list[Package]) -> list[Package]:
        return [pkg for pkg in packages if self.matches(pkg)]


def sort_packages(
    packages: list[Package], key: str = "weekly_downloads", descending: bool = True
) -> list[Package]:
    """
    Sort packages by any ``Package`` field.

    Packages whose value is None always sort last. Ties keep their input order.
    """
    if key not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by {key!r}")

    present = [pkg for pkg in packages if getattr(pkg, key) is not None]
    missing = [pkg for pkg in packages if getattr(pkg, key) is None]
    present.sort(key=lambda pkg: getattr(pkg, key), reverse=descending)
    return present + missing
