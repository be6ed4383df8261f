"""relnotes: render release notes from build metadata with Handlebars templates."""

__version__ = "0.1.0"
