"""
Pytest fixtures and configuration for formsift tests.

Markers:
- @pytest.mark.unit: Single class/function, no training on annotation folders (<1s/test)
- @pytest.mark.integration: Trains models end to end on the tiny fixture folders
- @pytest.mark.slow: Tests taking more than a few seconds

Fixture data:
- Forms are generated from a few templates (login / registration / search)
  with small per-site variations, one site per domain.
- make_data_dir builds a complete annotation folder (forms/ and pages/)
  under tmp_path in the on-disk format read by formsift.storage.
"""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

# =============================================================================
# Configuration isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch):
    """Point settings at an empty config dir so defaults are used."""
    from formsift.utils.config import get_settings

    config_dir = tmp_path_factory.mktemp("config")
    monkeypatch.setenv("FORMSIFT_CONFIG_DIR", str(config_dir))
    get_settings.cache_clear()
    yield config_dir
    get_settings.cache_clear()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests with no training on fixture folders")
    config.addinivalue_line("markers", "integration: End-to-end training on fixture folders")
    config.addinivalue_line("markers", "slow: Tests that take more than a few seconds")


# =============================================================================
# HTML templates
# =============================================================================


def login_form(i: int = 0) -> str:
    user = ["username", "login", "user"][i % 3]
    return f"""<form action="/account/login" method="post" class="login-form auth">
  <label for="u{i}">Username</label><input type="text" name="{user}" id="u{i}" placeholder="Your username">
  <label for="p{i}">Password</label><input type="password" name="password" id="p{i}" placeholder="Your password">
  <input type="hidden" name="csrf" value="t{i}">
  <input type="submit" value="Log in">
  <a href="/forgot">Forgot password</a>
</form>"""


def registration_form(i: int = 0) -> str:
    return f"""<form action="/account/register" method="post" class="signup-form auth">
  <label for="n{i}">Username</label><input type="text" name="username" id="n{i}" placeholder="Choose a username">
  <label for="e{i}">Email address</label><input type="email" name="email" id="e{i}" placeholder="Email address">
  <label for="p{i}">Password</label><input type="password" name="password" id="p{i}">
  <label for="c{i}">Confirm password</label><input type="password" name="password_confirm" id="c{i}">
  <button type="submit">Create account</button>
</form>"""


def search_form(i: int = 0) -> str:
    query = ["q", "query", "search"][i % 3]
    return f"""<form action="/search" method="get" class="search-box">
  <input type="search" name="{query}" placeholder="Search the site">
  <input type="submit" value="Search">
</form>"""


FORM_TEMPLATES: dict[str, Callable[[int], str]] = {
    "login": login_form,
    "registration": registration_form,
    "search": search_form,
}

FORM_SHORT = {"login": "l", "registration": "r", "search": "s"}

FIELD_LABELS = {
    "login": {"username": "u", "login": "u", "user": "u", "password": "p"},
    "registration": {"username": "u", "email": "e", "password": "p", "password_confirm": "p2"},
    "search": {"q": "q", "query": "q", "search": "q"},
}


def page_html(title: str, body: str, forms: str = "", h1: str = "") -> str:
    return f"""<!DOCTYPE html>
<html><head><title>{title}</title>
<meta name="description" content="{title} page of the site"></head>
<body class="site-body">
<nav><a href="/">Home</a> <a href="/about">About</a></nav>
<h1>{h1 or title}</h1>
<p>{body}</p>
{forms}
<footer>Copyright</footer>
</body></html>"""


def login_page(i: int = 0) -> str:
    return page_html("Sign in to your account", "Please log in to continue.", login_form(i), "Log in")


def error_page(i: int = 0) -> str:
    return page_html("404 Not Found", "The page you requested does not exist.", "", "Page not found")


def search_page(i: int = 0) -> str:
    return page_html("Search results", "Search results for your query.", search_form(i), "Search")


PAGE_TEMPLATES: dict[str, Callable[[int], str]] = {
    "login page": login_page,
    "error page": error_page,
    "search page": search_page,
}

PAGE_SHORT = {"login page": "lp", "error page": "ep", "search page": "sp"}


# =============================================================================
# Annotation folders
# =============================================================================


def _types_config(short: dict[str, str], na: str = "X", skip: str = "-") -> dict:
    return {
        "types": [{"short": s, "full": full} for full, s in short.items()],
        "NA_value": na,
        "skip_value": skip,
    }


def write_forms_folder(folder: Path, n_sites: int = 6) -> Path:
    """Forms folder with one form per site; types cycle login/registration/search."""
    folder.mkdir(parents=True, exist_ok=True)
    field_short = {
        "username": "u",
        "password": "p",
        "email": "e",
        "password confirmation": "p2",
        "search query": "q",
    }
    config = {
        "form_types": _types_config(FORM_SHORT),
        "field_types": _types_config(field_short),
    }
    (folder / "config.json").write_text(json.dumps(config), encoding="utf-8")

    kinds = list(FORM_TEMPLATES)
    index = {}
    for i in range(n_sites):
        kind = kinds[i % len(kinds)]
        path = f"site{i}.html"
        html = page_html(f"Site {i}", "Welcome.", FORM_TEMPLATES[kind](i))
        (folder / path).write_text(html, encoding="utf-8")
        fields = {name: code for name, code in FIELD_LABELS[kind].items() if f'name="{name}"' in html}
        index[path] = {
            "url": f"https://www.site{i}.com/{kind}",
            "forms": [FORM_SHORT[kind]],
            "fields": [fields],
            "form_annotated": [True],
            "fields_annotated": [True],
        }
    (folder / "index.json").write_text(json.dumps(index), encoding="utf-8")
    return folder


def write_pages_folder(folder: Path, n_sites: int = 6) -> Path:
    """Pages folder with one page per domain; types cycle login/error/search."""
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "config.json").write_text(
        json.dumps({"page_types": _types_config(PAGE_SHORT)}), encoding="utf-8"
    )
    kinds = list(PAGE_TEMPLATES)
    index = {}
    for i in range(n_sites):
        kind = kinds[i % len(kinds)]
        path = f"page{i}.html"
        (folder / path).write_text(PAGE_TEMPLATES[kind](i), encoding="utf-8")
        slug = kind.split()[0]
        index[path] = {"url": f"https://page{i}.org/{slug}/view?id={i}", "page_type": PAGE_SHORT[kind]}
    (folder / "index.json").write_text(json.dumps(index), encoding="utf-8")
    return folder


@pytest.fixture
def make_data_dir(tmp_path: Path) -> Callable[..., Path]:
    """Factory for a data folder with forms/ and optionally pages/."""

    def _make(pages: bool = True, n_sites: int = 6) -> Path:
        data_dir = tmp_path / "data"
        write_forms_folder(data_dir / "forms", n_sites)
        if pages:
            write_pages_folder(data_dir / "pages", n_sites)
        return data_dir

    return _make


@pytest.fixture
def training_forms():
    """Parsed forms and labels: three variants of each form type."""
    from formsift.htmlutil.document import load_form

    forms, labels = [], []
    for i in range(3):
        for kind, template in FORM_TEMPLATES.items():
            forms.append(load_form(template(i)))
            labels.append(kind)
    return forms, labels
