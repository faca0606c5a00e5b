"""API tests for the two-step product upload: parse and review, then commit."""

from crowdvine.models import Producer, Wine
from crowdvine.services.bulk_upload import REQUIRED_HEADERS

from tests.conftest import create_route

HEADER_LINE = ",".join(h.title() for h in REQUIRED_HEADERS)


def product_sheet(*rows: str) -> bytes:
    return "\n".join([HEADER_LINE, *rows]).encode("utf-8")


async def upload(client, content: bytes, filename: str = "products.csv"):
    return await client.post(
        "/api/admin/bulk-upload/parse",
        files={"file": (filename, content, "text/csv")},
    )


class TestBulkUpload:
    async def test_parse_reviews_without_creating(self, admin_client):
        await create_route()
        content = product_sheet(
            "Les Cailloux,2020,Grenache,red,249,Domaine du Pic,,Dark fruit,,https://x/c.jpg",
            "Blanc de Pic,2022,Picpoul,white,189,DOMAINE DU PIC,,Fresh,,https://x/b.jpg",
            "Nameless,2021,Syrah,orange,free,Domaine du Pik,,Text,,https://x/n.jpg",
        )

        response = await upload(admin_client, content)

        assert response.status_code == 200
        batch = response.json()
        assert batch["status"] == "reviewed"
        assert batch["summary"] == {"total": 3, "valid": 2, "warnings": 0, "errors": 1, "truncated": 0}
        assert [p["status"] for p in batch["products"]] == ["valid", "valid", "error"]
        assert await Wine.find_all().count() == 1

    async def test_summary_counts_rows_past_the_limit(self, admin_client, monkeypatch):
        monkeypatch.setattr("crowdvine.services.bulk_upload.parsers.MAX_ROWS", 2)
        content = product_sheet(
            *(f"Wine {n},2020,Syrah,red,149,Domaine du Pic,,Text,,https://x/{n}.jpg" for n in range(5))
        )

        response = await upload(admin_client, content)

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["total"] == 2
        assert summary["truncated"] == 3

    async def test_commit_creates_wines_and_producers(self, admin_client):
        route = await create_route()
        content = product_sheet(
            "Les Cailloux,2020,Grenache,red,249,Domaine du Pic,,Dark fruit,,https://x/c.jpg",
            "Finca Alta,2019,Tempranillo,red,199,Bodega Nueva,,Oak,,https://x/f.jpg",
            "Broken,,Syrah,red,100,Domaine du Pic,,Text,,https://x/x.jpg",
        )
        batch = (await upload(admin_client, content)).json()

        response = await admin_client.post(f"/api/admin/bulk-upload/{batch['batch_id']}/commit")

        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "committed"
        assert result["wines_created"] == 2
        assert result["producers_created"] == 1
        assert result["rows_skipped"] == 1
        assert result["message"] == "2 products uploaded successfully"

        cailloux = await Wine.find_one(Wine.handle == "les-cailloux-2020")
        assert cailloux.producer_id == route.producer.id
        assert cailloux.base_price_cents == 24900
        assert await Producer.find_one(Producer.name == "Bodega Nueva") is not None

    async def test_commit_twice_conflicts(self, admin_client):
        content = product_sheet("Solo,2021,Gamay,red,150,Domaine Solo,,Text,,https://x/s.jpg")
        batch = (await upload(admin_client, content)).json()

        first = await admin_client.post(f"/api/admin/bulk-upload/{batch['batch_id']}/commit")
        second = await admin_client.post(f"/api/admin/bulk-upload/{batch['batch_id']}/commit")

        assert first.status_code == 200
        assert second.status_code == 409

    async def test_batch_can_be_fetched(self, admin_client):
        content = product_sheet("Solo,2021,Gamay,red,150,Domaine Solo,,Text,,https://x/s.jpg")
        batch = (await upload(admin_client, content)).json()

        response = await admin_client.get(f"/api/admin/bulk-upload/{batch['batch_id']}")
        assert response.json()["filename"] == "products.csv"

    async def test_wrong_extension(self, admin_client):
        response = await upload(admin_client, b"{}", filename="products.json")
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["detail"]

    async def test_missing_columns(self, admin_client):
        response = await upload(admin_client, b"Wine Name,Vintage\nA,2020\n")
        assert response.status_code == 400

    async def test_admin_only(self, client):
        response = await upload(client, product_sheet())
        assert response.status_code == 403
