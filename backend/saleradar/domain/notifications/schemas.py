"""Pydantic schema for push notification payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class NotificationData(BaseModel):
	"""Structured fields the client routes on when the notification is tapped."""

	model_config = ConfigDict(populate_by_name=True)

	listing_id: str = Field(..., alias="listingId")
	deep_link: str = Field(..., alias="deepLink")


class NotificationPayload(BaseModel):
	target: str = Field(..., min_length=1)
	title: str
	body: str
	data: NotificationData

	def wire_data(self) -> dict[str, str]:
		return self.data.model_dump(by_alias=True)
