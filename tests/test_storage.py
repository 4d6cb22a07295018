"""
Tests for the annotation store.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-ST-N-01 | Forms folder | Equivalence – normal | One annotation per form, full names | - |
| TC-ST-N-02 | Schema config | Equivalence – normal | short <-> full maps, NA/skip | - |
| TC-ST-N-03 | Pages folder | Equivalence – normal | Sorted by (domain, path) | - |
| TC-ST-N-04 | URLs | Equivalence – normal | Registered domain | offline suffix list |
| TC-ST-N-05 | Stored form HTML | Equivalence – normal | Whole <form> kept with action/method | - |
| TC-ST-B-01 | NA form / skipped field | Boundary – drop | Dropped unless disabled | - |
| TC-ST-B-02 | Form count mismatch | Boundary – skip | File skipped | - |
| TC-ST-B-03 | Inner-HTML fragment | Boundary – fallback | Wrapped in <form> | - |
| TC-ST-A-01 | Missing index | Abnormal – data | TrainingDataError | - |
| TC-ST-A-02 | Invalid config JSON | Abnormal – data | TrainingDataError | - |
"""

import json
from pathlib import Path

import pytest

from formsift.errors import TrainingDataError
from formsift.htmlutil.document import load_form
from formsift.storage import AnnotationSchema, PageStorage, Storage, get_domain

from tests.conftest import write_forms_folder, write_pages_folder

pytestmark = pytest.mark.unit


def _update_index(folder: Path, path: str, **changes) -> None:
    index_path = folder / "index.json"
    index = json.loads(index_path.read_text(encoding="utf-8"))
    index[path].update(changes)
    index_path.write_text(json.dumps(index), encoding="utf-8")


# =============================================================================
# Forms
# =============================================================================


class TestStorage:
    """Tests for the forms folder."""

    def test_loads_all_forms(self, tmp_path: Path) -> None:
        folder = write_forms_folder(tmp_path / "forms", n_sites=3)
        annotations = Storage(folder).iter_annotations()

        assert [a.path for a in annotations] == ["site0.html", "site1.html", "site2.html"]
        assert [a.type_full for a in annotations] == ["login", "registration", "search"]
        assert annotations[0].type == "l"
        assert annotations[0].url == "https://www.site0.com/login"
        assert annotations[0].field_types_full == {"username": "username", "password": "password"}
        assert annotations[0].fields_annotated is True

    def test_form_html_keeps_form_attributes(self, tmp_path: Path) -> None:
        folder = write_forms_folder(tmp_path / "forms", n_sites=1)
        annotation = Storage(folder).iter_annotations()[0]

        assert annotation.form_html.lstrip().startswith("<form")
        form = load_form(annotation.form_html)
        assert form["action"] == "/account/login"
        assert form["method"] == "post"
        assert form.find("input", attrs={"name": "password"}) is not None

    def test_load_form_wraps_fragment(self) -> None:
        form = load_form('<input name="q" type="text">')
        assert form.name == "form"
        assert form.find("input", attrs={"name": "q"}) is not None

    def test_schema(self, tmp_path: Path) -> None:
        folder = write_forms_folder(tmp_path / "forms", n_sites=1)
        form_schema, field_schema = Storage(folder).get_schemas()

        assert form_schema.types["login"] == "l"
        assert form_schema.full_name("s") == "search"
        assert field_schema.full_name("p2") == "password confirmation"
        assert form_schema.na_value == "X"
        assert form_schema.skip_value == "-"

    def test_na_form_dropped(self, tmp_path: Path) -> None:
        folder = write_forms_folder(tmp_path / "forms", n_sites=2)
        _update_index(folder, "site0.html", forms=["X"])

        assert [a.path for a in Storage(folder).iter_annotations()] == ["site1.html"]
        kept = Storage(folder).iter_annotations(drop_na=False)
        assert [a.type for a in kept] == ["X", "r"]

    def test_skipped_field_dropped(self, tmp_path: Path) -> None:
        folder = write_forms_folder(tmp_path / "forms", n_sites=1)
        _update_index(folder, "site0.html", fields=[{"username": "-", "password": "p"}])

        annotation = Storage(folder).iter_annotations()[0]
        assert annotation.field_types == {"password": "p"}

    def test_form_count_mismatch_skipped(self, tmp_path: Path) -> None:
        folder = write_forms_folder(tmp_path / "forms", n_sites=2)
        _update_index(folder, "site0.html", forms=["l", "s"])

        assert [a.path for a in Storage(folder).iter_annotations()] == ["site1.html"]

    def test_missing_index(self, tmp_path: Path) -> None:
        storage = Storage(tmp_path / "nowhere")
        assert not storage.exists()
        with pytest.raises(TrainingDataError):
            storage.iter_annotations()

    def test_invalid_config(self, tmp_path: Path) -> None:
        folder = write_forms_folder(tmp_path / "forms", n_sites=1)
        (folder / "config.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(TrainingDataError):
            Storage(folder).iter_annotations()


class TestAnnotationSchema:
    """Tests for AnnotationSchema."""

    def test_unknown_code_kept(self) -> None:
        schema = AnnotationSchema.from_config({"types": [{"short": "a", "full": "alpha"}]})
        assert schema.full_name("a") == "alpha"
        assert schema.full_name("zz") == "zz"

    def test_empty_na_never_drops(self) -> None:
        schema = AnnotationSchema.from_config({})
        assert not schema.is_dropped("", drop_na=True, drop_skipped=True)


# =============================================================================
# Pages
# =============================================================================


class TestPageStorage:
    """Tests for the pages folder."""

    def test_sorted_by_domain_then_path(self, tmp_path: Path) -> None:
        folder = write_pages_folder(tmp_path / "pages", n_sites=3)
        _update_index(folder, "page0.html", url="https://zzz.org/login")

        annotations = PageStorage(folder).iter_annotations()

        assert [a.path for a in annotations] == ["page1.html", "page2.html", "page0.html"]
        assert [a.type_full for a in annotations] == ["error page", "search page", "login page"]

    def test_na_page_dropped(self, tmp_path: Path) -> None:
        folder = write_pages_folder(tmp_path / "pages", n_sites=2)
        _update_index(folder, "page1.html", page_type="X")

        assert [a.path for a in PageStorage(folder).iter_annotations()] == ["page0.html"]


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.site1.com/login", "site1.com"),
        ("http://shop.example.co.uk:8080/cart", "example.co.uk"),
        ("page1.org", "page1.org"),
        ("http://localhost/admin", "localhost"),
    ],
)
def test_get_domain(url: str, expected: str) -> None:
    assert get_domain(url) == expected
