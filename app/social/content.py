"""Post text generation for marketplace items."""

from __future__ import annotations

import dataclasses
import re
from typing import List

from app.marketplace.schemas import ADDRESS_PLACEHOLDER, TireListing, YardSaleItem


@dataclasses.dataclass(frozen=True)
class PostContent:
    text: str
    images: List[str]
    hashtags: List[str]

    def compose(self) -> str:
        if not self.hashtags:
            return self.text
        return f"{self.text}\n\n{' '.join(self.hashtags)}"


def _hashtag(value: str) -> str:
    return "#" + re.sub(r"[^A-Za-z0-9]+", "", value)


def _condition(value: str) -> str:
    return value.replace("_", " ").title()


def tire_post(listing: TireListing, brand_name: str) -> PostContent:
    details = [
        f"Size: {listing.size}",
        f"Brand: {listing.brand}",
        f"Price: ${listing.price:.2f}",
    ]
    if listing.tread_depth is not None:
        details.append(f"Tread Depth: {listing.tread_depth:g}/32\"")
    details.append(f"Condition: {_condition(listing.condition.value)}")

    text = f"Quality Used Tire Available! {listing.title}\n\n" + "\n".join(details)
    if listing.rim_service_available and listing.rim_service_price is not None:
        text += (
            f"\n\nProfessional rim mounting service available for "
            f"${listing.rim_service_price:.2f}!"
        )
    text += f"\n\nContact {brand_name} today!"

    hashtags = [
        "#TireDeals",
        "#UsedTires",
        _hashtag(brand_name),
        "#AutoParts",
        "#QualityTires",
        "#AffordableTires",
        "#CarMaintenance",
    ]
    brand_tag = _hashtag(listing.brand)
    if len(brand_tag) > 1:
        hashtags.append(brand_tag)
    return PostContent(text=text, images=list(listing.images), hashtags=hashtags)


def yard_sale_post(item: YardSaleItem, brand_name: str) -> PostContent:
    details = [
        f"Category: {item.category}",
        f"Price: ${item.price:.2f}" if item.price else "Make Offer",
        f"Condition: {_condition(item.condition.value)}",
    ]
    text = f"Yard Sale Find! {item.title}\n\n" + "\n".join(details)
    if item.available_dates:
        text += f"\n\nNext Sale: {min(item.available_dates).isoformat()}"
    if item.show_address and item.sale_address:
        text += f"\nLocation: {item.sale_address}"
    else:
        text += f"\nLocation: {ADDRESS_PLACEHOLDER}"
    text += f"\n\nContact {brand_name} for details!"

    hashtags = [
        "#YardSale",
        "#GarageSale",
        "#UsedItems",
        "#Deals",
        _hashtag(brand_name),
        "#SecondHand",
        "#Bargains",
    ]
    category_tag = _hashtag(item.category)
    if len(category_tag) > 1:
        hashtags.append(category_tag)
    return PostContent(text=text, images=list(item.images), hashtags=hashtags)
