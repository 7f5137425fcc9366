from .asset import AestheticAsset, Asset, AssetCompletionEvent  # noqa: F401
from .billing import CreditTransaction  # noqa: F401
from .media_asset import MediaAsset  # noqa: F401
from .product import AutoGenRequest, Organization, Product, Version  # noqa: F401
