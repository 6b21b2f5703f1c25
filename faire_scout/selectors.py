"""Centralised selectors for Faire listing and product detail pages."""

# ==== LISTING (search / category grid) ====
PRODUCT_PATH_FRAGMENT = "/product/"
PRODUCT_LINK = f"a[href*='{PRODUCT_PATH_FRAGMENT}']"
CARD = "[data-testid*='product']"
CARD_ALT = "article, [class*='ProductCard'], [class*='product-card']"
CARD_NAME = "[data-testid*='product-name'], h3, h2, [class*='ProductName']"
CARD_BRAND = "[data-testid*='brand'], [class*='brand'], [class*='Brand']"
CARD_IMAGE = "img"
CARD_BADGE = "[class*='badge'], [data-testid*='badge']"
NEXT_DATA = "script#__NEXT_DATA__"

# ==== DETAIL (product page fallbacks) ====
DETAIL_TITLE = "h1, [data-testid='product-title']"
DETAIL_BRAND = "[data-testid='brand-name'], a[href*='/brand/']"
DETAIL_IMAGE = "img[data-testid='product-image'], img[class*='ProductImage']"
DETAIL_DESCRIPTION = (
    "[data-testid='product-description'], div[class*='Description'] p, "
    "div#product-description-content"
)
DETAIL_WHOLESALE_PRICE = "[data-testid='wholesale-price']"
DETAIL_SKU = "[data-testid='product-sku']"
DETAIL_LOCATION = "[data-testid='product-location']"
DETAIL_SHIPPING = "[data-testid='product-shipping'], div[class*='Shipping']"
META_OG_TITLE = "meta[property='og:title']"
META_OG_IMAGE = "meta[property='og:image']"
META_OG_DESCRIPTION = "meta[property='og:description']"
META_DESCRIPTION = "meta[name='description']"

# Selectors listed here are constant fragments rather than full CSS queries.
NON_SELECTOR_CONSTANTS = {"PRODUCT_PATH_FRAGMENT"}
