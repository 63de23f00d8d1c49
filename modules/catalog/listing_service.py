"""
Catalog Module - Listing Ownership
=====================================
Create, update and delete a farmer's own produce listings.

Images are uploaded before the listing row is written; if the upload fails
the listing is not written at all. A listing that any order references can
not be deleted.
"""

import logging
from typing import List, Optional

from config.settings import PRODUCE_IMAGE_BUCKET
from common.exceptions import Farm2HomeError, NotFoundError, ReferentialConflictError
from common.flash import NoticeBoard
from common.forms import validate_form
from common.upload import PreparedImage
from modules.auth.service import SessionState
from modules.catalog.schemas import ProduceForm
from modules.catalog.service import ProduceCatalog
from modules.platform.client import PlatformClient
from modules.user.models import Role

logger = logging.getLogger("farm2home.listings")


class ListingManager:

    def __init__(
        self,
        client: PlatformClient,
        session: SessionState,
        notices: NoticeBoard,
        catalog: Optional[ProduceCatalog] = None,
    ):
        self.client = client
        self.session = session
        self.notices = notices
        self.catalog = catalog
        self.listings: List[dict] = []
        self.is_loading = False
        self.delete_error: Optional[str] = None

    async def load_own(self):
        if not self.session.is_authenticated:
            self.listings = []
            return
        self.is_loading = True
        try:
            self.listings = await self.client.table("produce").select(
                order_by="created_at", descending=True, farmer_id=self.session.user_id,
            )
        except Farm2HomeError as e:
            logger.error(f"Error fetching listings for {self.session.user_id}: {e.message}")
            self.notices.error("Error", "Failed to load your produce listings")
        finally:
            self.is_loading = False

    def get(self, produce_id: int) -> Optional[dict]:
        return next((p for p in self.listings if p["id"] == produce_id), None)

    # ==========================================
    # Create / update
    # ==========================================

    async def save(
        self,
        data: dict,
        image: Optional[PreparedImage] = None,
        produce_id: Optional[int] = None,
    ) -> Optional[dict]:
        """
        Validate and persist a listing. Raises ValidationError before any
        remote call; remote failures become notices and return None.
        """
        if not self.session.is_authenticated:
            self.notices.push("Not logged in", "Please log in to sell produce", "warning")
            return None
        if self.session.role != Role.FARMER.value:
            self.notices.error("Not allowed", "Only farmers can list produce")
            return None

        data = dict(data)
        if not (data.get("location") or "").strip() and self.session.profile:
            data["location"] = self.session.profile.get("location") or ""
        form = validate_form(ProduceForm, data)

        self.is_loading = True
        stored_key = None
        try:
            values = form.model_dump()
            if image is not None:
                path = f"{self.session.user_id}/{image.filename}"
                stored_key = await self.client.storage.upload(
                    PRODUCE_IMAGE_BUCKET, path, image.data, image.content_type,
                )
                values["image_url"] = self.client.storage.get_public_url(PRODUCE_IMAGE_BUCKET, path)

            if produce_id is None:
                row = await self.client.table("produce").insert(
                    dict(values, farmer_id=self.session.user_id),
                )
                self.listings = [row] + self.listings
                self.notices.push("Produce added", "Your produce has been listed successfully", "success")
            else:
                rows = await self.client.table("produce").update(
                    values, id=produce_id, farmer_id=self.session.user_id,
                )
                if not rows:
                    raise NotFoundError("Produce not found")
                row = rows[0]
                self.listings = [row if p["id"] == produce_id else p for p in self.listings]
                self.notices.push("Produce updated", "Your produce listing has been updated", "success")
            return row
        except Farm2HomeError as e:
            logger.error(f"Error saving produce {produce_id or '(new)'}: {e.message}")
            if stored_key:
                await self.client.storage.remove(*stored_key.split("/", 1))
            self.notices.error("Error", e.message or "An error occurred while saving produce")
            return None
        finally:
            self.is_loading = False

    # ==========================================
    # Delete
    # ==========================================

    async def delete(self, produce_id: int) -> bool:
        """Delete an owned listing unless orders reference it."""
        self.delete_error = None
        if not self.session.is_authenticated:
            self.notices.push("Not logged in", "Please log in to manage your produce", "warning")
            return False

        self.is_loading = True
        try:
            await self.client.table("produce").select_one(id=produce_id, farmer_id=self.session.user_id)
            referencing = await self.client.table("orders").select(produce_id=produce_id)
            if referencing:
                raise ReferentialConflictError()

            deleted = await self.client.table("produce").delete(
                id=produce_id, farmer_id=self.session.user_id,
            )
            if not deleted:
                raise NotFoundError("Produce not found")
        except ReferentialConflictError as e:
            logger.info(f"Refused to delete produce {produce_id}: referenced by orders")
            self.delete_error = e.message
            self.notices.error("Cannot delete", "This produce has existing orders and cannot be deleted.")
            return False
        except NotFoundError:
            logger.warning(f"Delete of produce {produce_id} refused: not owned by {self.session.user_id}")
            self.delete_error = "Produce not found"
            self.notices.error("Not found", "This produce does not exist or is not yours")
            return False
        except Farm2HomeError as e:
            logger.error(f"Error deleting produce {produce_id}: {e.message}")
            self.delete_error = (
                "Failed to delete produce. It may be referenced in orders or another error occurred."
            )
            self.notices.error("Error", "Failed to delete produce")
            return False
        finally:
            self.is_loading = False

        self.listings = [p for p in self.listings if p["id"] != produce_id]
        if self.catalog is not None:
            self.catalog.remove(produce_id)
        self.notices.push("Produce deleted", "Your produce listing has been removed", "success")
        return True
