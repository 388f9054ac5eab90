"""Default pricing configuration.

The pricing table is built once at import and injected into the credit
service, which seeds it into the ``feature_pricing`` and ``credit_packages``
tables. After seeding, the database rows are authoritative and only change
through the admin pricing endpoint.
"""

from dataclasses import dataclass
from enum import Enum


class Feature(str, Enum):
    """Metered generation features."""
    VIDEO_GENERATION = "video-generation"
    MAP_ANIMATION = "map-animation"
    IMAGE_GENERATION = "image-generation"


@dataclass(frozen=True)
class FeaturePrice:
    """Credit cost of one use of a feature with a given provider."""
    feature: str
    provider: str
    credits_per_use: int
    description: str | None = None


@dataclass(frozen=True)
class PackageSpec:
    """A purchasable bundle of credits."""
    id: str
    name: str
    credits: int
    price: int  # cents
    description: str | None = None
    currency: str = "USD"
    popular: bool = False
    is_free: bool = False


@dataclass(frozen=True)
class PricingTable:
    """Immutable feature prices and credit packages."""
    features: tuple[FeaturePrice, ...]
    packages: tuple[PackageSpec, ...]


DEFAULT_PRICING = PricingTable(
    features=(
        FeaturePrice(Feature.VIDEO_GENERATION.value, "hailuo", 8, "Hailuo video generation"),
        FeaturePrice(Feature.VIDEO_GENERATION.value, "veo2", 15, "Veo2 video generation"),
        FeaturePrice(Feature.MAP_ANIMATION.value, "hailuo", 5, "Hailuo map animation"),
        FeaturePrice(Feature.MAP_ANIMATION.value, "veo2", 10, "Veo2 map animation"),
        FeaturePrice(Feature.IMAGE_GENERATION.value, "default", 3, "Image generation"),
    ),
    packages=(
        PackageSpec(
            id="starter",
            name="Starter Pack",
            credits=50,
            price=0,
            description="Free starter pack for new users",
            is_free=True,
        ),
        PackageSpec(
            id="pro",
            name="Pro Pack",
            credits=200,
            price=2999,  # $29.99
            description="Great for regular users",
            popular=True,
        ),
        PackageSpec(
            id="enterprise",
            name="Enterprise Pack",
            credits=1000,
            price=9999,  # $99.99
            description="For power users and businesses",
        ),
    ),
)

# Package whose purchase rewards the buyer's referrer
PRO_PACKAGE_ID = "pro"
