from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Iterable, Optional

from .utils.fonts import BASE_FONT, BASE_FONT_BOLD


@dataclass(frozen=True)
class BrandProfile:
    key: str
    name: str
    address: str
    phone: str
    gstin: str
    font_family: str = BASE_FONT
    font_family_bold: str = BASE_FONT_BOLD
    title_size: int = 16
    body_size: int = 9
    primary_color: str = "#1E293B"
    accent_color: str = "#0EA5E9"
    highlight_color: str = "#E2E8F0"
    label_color: str = "#F1F5F9"

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


GARANI_ADDRESS = (
    "Old No.5A, New E351, 7th A Main Road, MSR Layout, Havanuru Layout, "
    "Bengaluru Urban, Bengaluru, Karnataka, 560073"
)

BUILTIN_BRANDS: tuple[BrandProfile, ...] = (
    BrandProfile(
        key="garani",
        name="GARANI PUBLICATION",
        address=GARANI_ADDRESS,
        phone="Mobile: 9108447657",
        gstin="GSTIN: 29CBIPN0092E1ZM",
    ),
    BrandProfile(
        key="garani_kannada",
        name="ಗರಣಿ ಪ್ರಕಾಶನ",
        address=GARANI_ADDRESS,
        phone="Mobile: 9108447657",
        gstin="GSTIN: 29CBIPN0092E1ZM",
        font_family="NotoSansKannada",
        font_family_bold="NotoSansKannada-Bold",
        title_size=18,
    ),
    BrandProfile(
        key="classic",
        name="GARANI PUBLICATION",
        address=GARANI_ADDRESS,
        phone="Mobile: 9108447657",
        gstin="GSTIN: 29CBIPN0092E1ZM",
        font_family="Times-Roman",
        font_family_bold="Times-Bold",
        primary_color="#0A2540",
        accent_color="#62B5FF",
    ),
)


@dataclass
class BrandRegistry:
    """Brand profiles plus the font names the PDF backend can actually use.

    Built once by the app factory and handed to the renderer.
    """

    profiles: dict[str, BrandProfile]
    default_key: str
    available_fonts: set[str] = field(default_factory=set)

    @classmethod
    def build(cls, brands: Iterable[BrandProfile], default_key: str, available_fonts: Iterable[str] = ()) -> "BrandRegistry":
        profiles = {brand.key: brand for brand in brands}
        if default_key not in profiles:
            default_key = next(iter(profiles))
        return cls(profiles=profiles, default_key=default_key, available_fonts=set(available_fonts))

    def get(self, key: Optional[str]) -> BrandProfile:
        return self.profiles.get(key or "") or self.profiles[self.default_key]

    def keys(self) -> list[str]:
        return list(self.profiles)

    def fonts_for(self, brand: BrandProfile) -> tuple[str, str]:
        """Regular and bold font names, falling back to Helvetica when unregistered."""
        regular = brand.font_family if self._usable(brand.font_family) else BASE_FONT
        bold = brand.font_family_bold if self._usable(brand.font_family_bold) else BASE_FONT_BOLD
        return regular, bold

    def _usable(self, font_name: str) -> bool:
        return font_name.startswith(("Helvetica", "Times", "Courier")) or font_name in self.available_fonts
