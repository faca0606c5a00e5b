"""Tests for product upload parsing, producer matching and row review."""

import io

import pytest
from openpyxl import Workbook

from crowdvine.services.bulk_upload import (
    REQUIRED_HEADERS,
    BulkUploadError,
    levenshtein_distance,
    parse_csv,
    parse_products,
    parse_upload,
    parse_xlsx,
    review_product,
    row_to_product,
    similar_names,
    similarity,
    summarize,
)

HEADER_LINE = ",".join(h.title() for h in REQUIRED_HEADERS)


def csv_bytes(*rows: str, encoding: str = "utf-8") -> bytes:
    return "\n".join([HEADER_LINE, *rows]).encode(encoding)


def valid_row(**overrides) -> dict:
    row = {
        "wine name": "Les Cailloux",
        "vintage": "2020",
        "grape varieties": "Grenache, Syrah",
        "color": "Red",
        "base price (sek)": "249,50",
        "producer name": "Domaine du Test",
        "handle": "",
        "description": "Dark fruit and garrigue.",
        "description html": "",
        "image url": "https://example.com/cailloux.jpg",
    }
    row.update(overrides)
    return row


class TestParseCsv:
    def test_headers_are_lowercased(self):
        headers, rows, _ = parse_csv(
            csv_bytes("Les Cailloux,2020,Grenache,red,249,Domaine,,Text,,https://x/y.jpg")
        )
        assert headers == REQUIRED_HEADERS
        assert rows[0]["wine name"] == "Les Cailloux"
        assert rows[0]["base price (sek)"] == "249"

    def test_blank_rows_are_skipped(self):
        _, rows, _ = parse_csv(csv_bytes(",,,,,,,,,", "A,2020,G,red,100,P,,D,,https://x/a.jpg"))
        assert len(rows) == 1

    def test_latin1_fallback(self):
        content = csv_bytes("Rosé,2021,Cinsault,rose,150,Château Éte,,Frais,,https://x/r.jpg", encoding="latin-1")
        _, rows, _ = parse_csv(content)
        assert rows[0]["wine name"] == "Rosé"

    def test_empty_file(self):
        with pytest.raises(BulkUploadError):
            parse_csv(b"")

    def test_rows_past_the_limit_are_counted(self, monkeypatch):
        monkeypatch.setattr("crowdvine.services.bulk_upload.parsers.MAX_ROWS", 2)
        row = "A,2020,G,red,100,P,,D,,https://x/a.jpg"
        _, rows, truncated = parse_csv(csv_bytes(row, row, row, ",,,,,,,,,", row))
        assert len(rows) == 2
        assert truncated == 2


class TestParseXlsx:
    def _xlsx(self, rows):
        wb = Workbook()
        ws = wb.active
        ws.append([h.title() for h in REQUIRED_HEADERS])
        for row in rows:
            ws.append(row)
        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    def test_reads_first_sheet(self):
        content = self._xlsx([["Vieilles Vignes", 2019, "Gamay", "red", 189.0, "Domaine X", None, "Text", None, "https://x/v.jpg"]])
        headers, rows, _ = parse_xlsx(content)
        assert headers == REQUIRED_HEADERS
        assert rows[0]["vintage"] == "2019"
        assert rows[0]["handle"] == ""

    def test_not_a_workbook(self):
        with pytest.raises(BulkUploadError):
            parse_xlsx(b"definitely not a zip file")

    def test_rows_past_the_limit_are_counted(self, monkeypatch):
        monkeypatch.setattr("crowdvine.services.bulk_upload.parsers.MAX_ROWS", 1)
        row = ["Gamay", 2019, "Gamay", "red", 150.0, "Domaine X", None, "Text", None, "https://x/g.jpg"]
        sheet = parse_xlsx(self._xlsx([row, row, row]))
        assert len(sheet.rows) == 1
        assert sheet.truncated == 2


class TestParseUpload:
    def test_rejects_other_extensions(self):
        with pytest.raises(BulkUploadError, match="csv"):
            parse_upload("products.json", b"[]")

    def test_reports_missing_headers(self):
        with pytest.raises(BulkUploadError, match="image url"):
            parse_upload("products.csv", b"Wine Name,Vintage\nA,2020\n")

    def test_requires_rows(self):
        with pytest.raises(BulkUploadError, match="no product rows"):
            parse_upload("products.csv", csv_bytes())


class TestMatching:
    def test_levenshtein(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_similarity_is_case_insensitive(self):
        assert similarity("Domaine", "DOMAINE") == 1.0
        assert similarity("", "") == 1.0

    def test_similar_names_sorted_and_limited(self):
        candidates = ["Domaine Tempier", "Domaine Tempiar", "Bodega Ximenez", "Domaine Tempie"]
        matches = similar_names("Domaine Tempir", candidates, threshold=0.7, limit=2)
        assert len(matches) == 2
        assert all(m["name"].startswith("Domaine Temp") for m in matches)
        assert matches[0]["similarity"] >= matches[1]["similarity"]


class TestRowReview:
    def test_valid_row(self):
        product, errors = row_to_product(valid_row(), 2)
        assert errors == []
        assert product["color"] == "red"
        assert product["base_price_cents"] == 24950
        assert product["handle"] == "les-cailloux-2020"
        assert product["description_html"] == "<p>Dark fruit and garrigue.</p>"

    def test_invalid_row_collects_every_error(self):
        _, errors = row_to_product(valid_row(**{"wine name": "", "color": "orange", "base price (sek)": "free"}), 5)
        assert "Row 5: Wine name is required" in errors
        assert any("Color must be one of" in e for e in errors)
        assert "Row 5: Base price must be a positive number" in errors

    def test_parse_products_numbers_rows_after_header(self):
        products = parse_products([valid_row(), valid_row(**{"vintage": ""})])
        assert [p["row_number"] for p in products] == [2, 3]
        assert products[1]["errors"] == ["Row 3: Vintage is required"]

    def test_existing_handle_is_an_error(self):
        product = parse_products([valid_row()])[0]
        result = review_product(product, {"les-cailloux-2020"}, ["Domaine du Test"])
        assert result["status"] == "error"

    def test_misspelled_producer_is_a_warning_with_suggestions(self):
        product = parse_products([valid_row(**{"producer name": "Domaine du Tset"})])[0]
        result = review_product(product, set(), ["Domaine du Test", "Bodega Sur"])
        assert result["status"] == "warning"
        assert result["similar_producers"][0]["name"] == "Domaine du Test"

    def test_known_producer_matches_case_insensitively(self):
        product = parse_products([valid_row(**{"producer name": "DOMAINE DU TEST"})])[0]
        result = review_product(product, set(), ["Domaine du Test"])
        assert result["status"] == "valid"
        assert result["issues"] == []

    def test_new_producer_in_empty_catalog(self):
        product = parse_products([valid_row()])[0]
        result = review_product(product, set(), [])
        assert result["status"] == "warning"
        assert "will be created" in result["issues"][0]

    def test_summarize(self):
        review = [{"status": "valid"}, {"status": "warning"}, {"status": "error"}, {"status": "error"}]
        assert summarize(review) == {"total": 4, "valid": 1, "warnings": 1, "errors": 2, "truncated": 0}
        assert summarize(review, truncated=7)["truncated"] == 7
