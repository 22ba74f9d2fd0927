from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Layout = Literal["single-column", "two-column", "timeline", "grid"]


@dataclass(frozen=True)
class PortfolioTemplate:
    id: str
    name: str
    description: str
    layout: Layout
    supported_sections: tuple[str, ...]
    best_for: str = ""


@dataclass(frozen=True)
class PortfolioTheme:
    id: str
    name: str
    description: str
    colors: dict[str, str] = field(default_factory=dict)
    heading_font: str = "Inter"
    body_font: str = "Inter"


# Order matters: the first entry is the fallback when a recommendation
# names something outside the catalog.
TEMPLATES: tuple[PortfolioTemplate, ...] = (
    PortfolioTemplate(
        id="modern-minimal",
        name="Modern Minimal",
        description="A clean, single-column layout that keeps attention on the content.",
        layout="single-column",
        supported_sections=("summary", "skills", "experience", "project", "certification", "education", "custom"),
        best_for="entry-level profiles and short portfolios",
    ),
    PortfolioTemplate(
        id="professional",
        name="Professional",
        description="Two columns with a sidebar for skills and contact details.",
        layout="two-column",
        supported_sections=("summary", "skills", "experience", "project", "certification", "education", "custom"),
        best_for="moderate content with a strong skills list",
    ),
    PortfolioTemplate(
        id="timeline",
        name="Timeline",
        description="A chronological layout that emphasises career progression.",
        layout="timeline",
        supported_sections=("summary", "experience", "project", "certification", "education", "custom"),
        best_for="several roles showing growth over time",
    ),
    PortfolioTemplate(
        id="grid-showcase",
        name="Grid Showcase",
        description="Card grid for projects and visual work.",
        layout="grid",
        supported_sections=("summary", "project", "skills", "certification", "custom"),
        best_for="project-heavy or design portfolios",
    ),
)

THEMES: tuple[PortfolioTheme, ...] = (
    PortfolioTheme(
        id="light-blue",
        name="Light Blue",
        description="Clean and corporate; safe for traditional industries.",
        colors={"primary": "#3b82f6", "secondary": "#8b5cf6", "background": "#ffffff", "text": "#1f2937"},
    ),
    PortfolioTheme(
        id="dark-slate",
        name="Dark Slate",
        description="Dark, contemporary look that suits engineering and data roles.",
        colors={"primary": "#10b981", "secondary": "#06b6d4", "background": "#0f172a", "text": "#f1f5f9"},
    ),
    PortfolioTheme(
        id="warm-sunset",
        name="Warm Sunset",
        description="Warm and expressive; for designers and creative roles.",
        colors={"primary": "#f59e0b", "secondary": "#ef4444", "background": "#fffbeb", "text": "#78350f"},
        heading_font="Merriweather",
        body_font="Open Sans",
    ),
    PortfolioTheme(
        id="elegant-purple",
        name="Elegant Purple",
        description="Refined and premium; for senior leaders and executives.",
        colors={"primary": "#8b5cf6", "secondary": "#ec4899", "background": "#faf5ff", "text": "#4c1d95"},
        heading_font="Playfair Display",
        body_font="Lato",
    ),
    PortfolioTheme(
        id="ocean-teal",
        name="Ocean Teal",
        description="Fresh and modern; for startups and product roles.",
        colors={"primary": "#14b8a6", "secondary": "#0ea5e9", "background": "#f0fdfa", "text": "#134e4a"},
        heading_font="Montserrat",
        body_font="Roboto",
    ),
)


class TemplateThemeCatalog:
    def __init__(
        self,
        templates: tuple[PortfolioTemplate, ...] = TEMPLATES,
        themes: tuple[PortfolioTheme, ...] = THEMES,
    ):
        if not templates or not themes:
            raise ValueError("catalog needs at least one template and one theme")
        self.templates = templates
        self.themes = themes
        self._templates_by_id = {template.id: template for template in templates}
        self._themes_by_id = {theme.id: theme for theme in themes}

    @property
    def top_template(self) -> PortfolioTemplate:
        return self.templates[0]

    @property
    def top_theme(self) -> PortfolioTheme:
        return self.themes[0]

    def get_template(self, template_id: str | None) -> PortfolioTemplate | None:
        return self._templates_by_id.get((template_id or "").strip().lower())

    def get_theme(self, theme_id: str | None) -> PortfolioTheme | None:
        return self._themes_by_id.get((theme_id or "").strip().lower())

    def template_ids(self) -> list[str]:
        return [template.id for template in self.templates]

    def theme_ids(self) -> list[str]:
        return [theme.id for theme in self.themes]


default_catalog = TemplateThemeCatalog()
