"""
HTML rendering for the IdP login page.
"""

from pathlib import Path
from jinja2 import Environment, FileSystemLoader

_template_dir = Path(__file__).parent / "templates"
_env = Environment(
    loader=FileSystemLoader(_template_dir),
    autoescape=True,
)


def login_page(
    params: dict,
    app_name: str = "",
    federated_providers: list = None,
    error: str = "",
) -> str:
    """Generate the login page HTML, carrying the authorization request as hidden fields."""
    template = _env.get_template("login.jinja2")
    return template.render(
        params=params,
        app_name=app_name,
        federated_providers=federated_providers or [],
        error=error,
    )
