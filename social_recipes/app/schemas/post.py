from typing import Optional

from pydantic import BaseModel


class RawPost(BaseModel):
    """Post content as returned by a PostFetcher."""

    post_id: str
    caption: Optional[str] = None
    owner_username: Optional[str] = None
    shortcode: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    # Some sources hand over an already structured recipe
    recipe: Optional[dict] = None
