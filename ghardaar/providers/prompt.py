"""Listing details accepted by the description generator, and the prompt built from them."""

from pydantic import BaseModel, Field


class ListingLocation(BaseModel):
    city: str = ""
    state: str = ""
    area: str = ""
    address: str = ""


class ListingFeatures(BaseModel):
    bedrooms: int | str | None = None
    bathrooms: int | str | None = None
    amenities: list[str] | None = None


class ProjectDetails(BaseModel):
    carpet_area: str | int | None = None
    config: str | None = None
    floors: str | int | None = None
    possession_status: str | None = None


class ListingDetails(BaseModel):
    title: str
    property_type: str = ""
    listing_type: str = ""
    location: ListingLocation = Field(default_factory=ListingLocation)
    features: ListingFeatures = Field(default_factory=ListingFeatures)
    project_details: ProjectDetails = Field(default_factory=ProjectDetails)


def build_description_prompt(listing: ListingDetails) -> str:
    loc = listing.location
    features = listing.features
    project = listing.project_details

    amenities = ", ".join(features.amenities) if features.amenities else "Standard amenities"

    project_lines = []
    if project.config:
        project_lines.append(f"- Configuration: {project.config}")
    if project.floors:
        project_lines.append(f"- Floors: {project.floors}")
    if project.possession_status:
        project_lines.append(f"- Possession: {project.possession_status}")

    lines = [
        "Write a professional, attractive, and SEO-friendly property description "
        "for a real estate listing based on the following details:",
        "",
        f"Property Title: {listing.title}",
        f"Type: {listing.property_type} ({listing.listing_type})",
        f"Location: {loc.city}, {loc.state} ({loc.area})",
        f"Address: {loc.address}",
        "",
        "Key Features:",
        f"- Bedrooms: {features.bedrooms if features.bedrooms is not None else 'N/A'}",
        f"- Bathrooms: {features.bathrooms if features.bathrooms is not None else 'N/A'}",
        f"- Area: {project.carpet_area or 'N/A'}",
        "",
        f"Amenities: {amenities}",
        "",
        "Project Details:",
        *project_lines,
        "",
        "Tone: Professional, luxurious, and inviting.",
        "Format: Two concise paragraphs highlighting the lifestyle and convenience, "
        "followed by a bulleted list of key highlights.",
        "Do not include any contact placeholders or fake phone numbers.",
    ]
    return "\n".join(lines)
