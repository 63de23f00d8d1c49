import asyncio
import io
import os

import pytest
from PIL import Image

from config import settings
from common.exceptions import StorageError, ValidationError
from common.upload import prepare_image
from modules.auth.context import StorefrontContext
from modules.catalog.models import Produce
from modules.order.models import Order
from modules.platform.storage import StorageClient
from modules.platform.tables import TableClient

from conftest import make_produce, count_rows, all_orders

VALID = {"name": "Okra", "description": "Tender green okra pods", "price": "3.20", "location": "Pune, MH"}


def _png(size=(2000, 1000)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, "green").save(buf, format="PNG")
    return buf.getvalue()


# ==========================================
# Image preparation
# ==========================================

def test_prepare_image_shrinks_and_renames():
    prepared = prepare_image("field.png", _png())
    assert prepared.ext == ".png"
    assert prepared.filename != "field.png"
    assert prepared.content_type == "image/png"
    assert Image.open(io.BytesIO(prepared.data)).size == (1200, 600)


@pytest.mark.parametrize("filename, raw", [
    ("notes.txt", b"hello"),
    ("fake.jpg", b"not an image"),
])
def test_prepare_image_rejects_bad_files(filename, raw):
    with pytest.raises(ValidationError) as exc:
        prepare_image(filename, raw)
    assert "image" in exc.value.errors


# ==========================================
# Save
# ==========================================

def test_farmer_creates_listing_with_image(farmer):
    async def scenario():
        ctx = await StorefrontContext.open(farmer["token"])
        row = await ctx.listings.save(VALID, image=prepare_image("okra.png", _png((50, 50))))
        assert row["farmer_id"] == farmer["id"]
        assert row["image_url"].startswith(f"http://testserver/storage/produce-images/{farmer['id']}/")
        assert ctx.listings.listings[0]["id"] == row["id"]
        await ctx.close()
        return row

    row = asyncio.run(scenario())
    path = row["image_url"].split("/storage/", 1)[1]
    assert os.path.isfile(os.path.join(settings.STORAGE_DIR, path))


def test_blank_location_defaults_to_profile(farmer):
    async def scenario():
        ctx = await StorefrontContext.open(farmer["token"])
        row = await ctx.listings.save(dict(VALID, location="  "))
        assert row["location"] == farmer["location"]
        await ctx.close()

    asyncio.run(scenario())


def test_invalid_listing_raises_before_any_call(farmer, monkeypatch):
    async def scenario():
        ctx = await StorefrontContext.open(farmer["token"])
        calls = []

        async def spy(self, op, work):
            calls.append(op)

        monkeypatch.setattr(TableClient, "_run", spy)
        with pytest.raises(ValidationError) as exc:
            await ctx.listings.save(dict(VALID, price="0", description="short"))
        assert set(exc.value.errors) == {"price", "description"}
        assert calls == []
        await ctx.close()

    asyncio.run(scenario())


def test_consumers_cannot_list_produce(consumer):
    async def scenario():
        ctx = await StorefrontContext.open(consumer["token"])
        assert await ctx.listings.save(VALID) is None
        assert ctx.notices.drain()[0].title == "Not allowed"
        await ctx.close()

    asyncio.run(scenario())
    assert count_rows(Produce) == 0


def test_failed_upload_writes_nothing(farmer, monkeypatch):
    async def failing_upload(self, bucket, path, data, content_type=None):
        raise StorageError("Upload failed")

    monkeypatch.setattr(StorageClient, "upload", failing_upload)

    async def scenario():
        ctx = await StorefrontContext.open(farmer["token"])
        assert await ctx.listings.save(VALID, image=prepare_image("okra.png", _png((10, 10)))) is None
        assert ctx.notices.drain()[-1].description == "Upload failed"
        await ctx.close()

    asyncio.run(scenario())
    assert count_rows(Produce) == 0


def test_update_keeps_image_and_only_touches_own_rows(farmer):
    from conftest import make_account
    other = make_account("other@example.com", role="farmer")
    theirs = make_produce(other["id"], "Mango")

    async def scenario():
        ctx = await StorefrontContext.open(farmer["token"])
        row = await ctx.listings.save(VALID, image=prepare_image("okra.png", _png((10, 10))))
        updated = await ctx.listings.save(dict(VALID, price="4.00"), produce_id=row["id"])
        assert str(updated["price"]) in ("4.00", "4")
        assert updated["image_url"] == row["image_url"]

        assert await ctx.listings.save(VALID, produce_id=theirs) is None
        assert ctx.notices.drain()[-1].description == "Produce not found"
        await ctx.close()

    asyncio.run(scenario())
    assert count_rows(Produce, farmer_id=other["id"], name="Mango") == 1


# ==========================================
# Delete
# ==========================================

def test_delete_referenced_listing_is_refused(farmer, consumer):
    carrot = make_produce(farmer["id"], "Carrot")

    async def scenario():
        buyer = await StorefrontContext.open(consumer["token"])
        await buyer.cart.add_by_id(carrot, 1)
        assert await buyer.cart.place_order()
        await buyer.close()

        ctx = await StorefrontContext.open(farmer["token"])
        await ctx.catalog.load()
        await ctx.listings.load_own()
        assert not await ctx.listings.delete(carrot)
        assert ctx.listings.delete_error.startswith("Cannot delete produce that has existing orders")
        assert ctx.notices.drain()[-1].title == "Cannot delete"
        assert ctx.listings.get(carrot) is not None
        assert ctx.catalog.get(carrot) is not None
        await ctx.close()

    asyncio.run(scenario())
    assert count_rows(Produce, id=carrot) == 1
    assert count_rows(Order) == 1


def test_delete_of_another_farmers_ordered_listing_reads_as_not_found(farmer, consumer):
    from conftest import make_account
    other = make_account("other@example.com", role="farmer")
    mango = make_produce(other["id"], "Mango")

    async def scenario():
        buyer = await StorefrontContext.open(consumer["token"])
        await buyer.cart.add_by_id(mango, 1)
        assert await buyer.cart.place_order()
        await buyer.close()

        ctx = await StorefrontContext.open(farmer["token"])
        assert not await ctx.listings.delete(mango)
        assert ctx.listings.delete_error == "Produce not found"
        assert ctx.notices.drain()[-1].title == "Not found"
        await ctx.close()

    asyncio.run(scenario())
    assert count_rows(Produce, id=mango) == 1


def test_delete_unreferenced_listing(farmer):
    carrot = make_produce(farmer["id"], "Carrot")

    async def scenario():
        ctx = await StorefrontContext.open(farmer["token"])
        await ctx.catalog.load()
        await ctx.listings.load_own()
        assert await ctx.listings.delete(carrot)
        assert ctx.listings.listings == []
        assert ctx.catalog.produces == []
        await ctx.close()

    asyncio.run(scenario())
    assert count_rows(Produce) == 0


# ==========================================
# Order history
# ==========================================

def test_order_history_by_role(farmer, consumer):
    from conftest import make_account
    carrot = make_produce(farmer["id"], "Carrot", price="2.00")
    other = make_account("other@example.com", role="farmer")
    mango = make_produce(other["id"], "Mango", price="5.00")

    async def scenario():
        buyer = await StorefrontContext.open(consumer["token"])
        await buyer.cart.add_by_id(carrot, 2)
        await buyer.cart.add_by_id(mango, 1)
        await buyer.cart.place_order()
        await buyer.orders.load(buyer.profile)
        assert len(buyer.orders.orders) == 2
        assert str(buyer.orders.total_spent) in ("9.00", "9")
        await buyer.close()

        seller = await StorefrontContext.open(farmer["token"])
        await seller.orders.load(seller.profile)
        assert [o["produce"]["name"] for o in seller.orders.orders] == ["Carrot"]
        assert seller.orders.orders[0]["consumer"]["full_name"] == "Carl Consumer"
        await seller.close()

    asyncio.run(scenario())
    assert len(all_orders()) == 2
