from app.catalog.templates_themes import (
    TEMPLATES,
    THEMES,
    PortfolioTemplate,
    PortfolioTheme,
    TemplateThemeCatalog,
    default_catalog,
)

__all__ = [
    "PortfolioTemplate",
    "PortfolioTheme",
    "TEMPLATES",
    "THEMES",
    "TemplateThemeCatalog",
    "default_catalog",
]
