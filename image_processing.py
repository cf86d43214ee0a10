"""
Product Image Processing
------------------------
Batch pipeline for product photos:
1. Matches each file to a SKU from its filename
2. Converts the image to WebP
3. Runs a basic color / shape analysis
4. Uploads to the brand's storage bucket
5. Updates image_url, colour and category on the items table

Each image produces an ImageProcessingResult; a failed image never stops the batch.
"""

import io
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
import streamlit as st
from PIL import Image
from rapidfuzz.distance import Levenshtein

from logger import log

MATCH_THRESHOLD = 0.7


@dataclass
class ProductInfo:
    sku: str
    name: str
    brand_name: str


@dataclass
class SkuMatch:
    sku: str
    confidence: float
    product: ProductInfo


@dataclass
class ImageAnalysis:
    product_type: str
    color: str
    confidence: float
    additional_info: List[str] = field(default_factory=list)


@dataclass
class ImageProcessingResult:
    success: bool
    original_filename: str
    final_filename: str = ""
    matched_sku: Optional[str] = None
    product_type: Optional[str] = None
    detected_color: Optional[str] = None
    confidence: Optional[float] = None
    webp_url: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    item_details: Optional[Dict[str, Any]] = None


@dataclass
class BatchUploadProgress:
    total: int
    processed: int = 0
    current: str = ""
    results: List[ImageProcessingResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def get_product_skus(supabase, company_id: str, brand_id: Optional[str] = None) -> List[ProductInfo]:
    query = (
        supabase.table("items")
        .select("sku,name,brands!inner(id,brand_name)")
        .eq("brands.company_id", company_id)
        .eq("status", "active")
    )
    if brand_id:
        query = query.eq("brand_id", brand_id)

    rows = getattr(query.execute(), "data", None) or []
    products = []
    for row in rows:
        brand = row.get("brands") or {}
        if isinstance(brand, list):
            brand = brand[0] if brand else {}
        products.append(ProductInfo(
            sku=str(row.get("sku", "")),
            name=str(row.get("name", "")),
            brand_name=brand.get("brand_name") or "Unknown",
        ))
    return products


def string_similarity(a: str, b: str) -> float:
    """1 - normalised Levenshtein distance."""
    return Levenshtein.normalized_similarity(a, b)


def clean_filename(filename: str) -> str:
    stem = re.sub(r"\.[^/.]+$", "", filename)
    return re.sub(r"[_\-\s]+", " ", stem).upper()


def sku_match_confidence(cleaned_filename: str, sku: str) -> float:
    sku = sku.upper()
    if not sku:
        return 0.0
    if sku in cleaned_filename:
        return 1.0

    compact = re.sub(r"[^A-Z0-9]", "", sku)
    if compact:
        if compact in cleaned_filename:
            return 0.8
        # Same characters with any separators in between
        flexible = r"[-_\s]*".join(re.escape(c) for c in compact)
        if re.search(flexible, cleaned_filename):
            return 0.8

    if string_similarity(cleaned_filename, sku) > 0.8:
        return 0.75
    return 0.0


def match_sku_from_filename(filename: str, products: List[ProductInfo]) -> Optional[SkuMatch]:
    cleaned = clean_filename(filename)
    best = None
    for product in products:
        confidence = sku_match_confidence(cleaned, product.sku)
        if confidence > MATCH_THRESHOLD and (best is None or confidence > best.confidence):
            best = SkuMatch(sku=product.sku, confidence=confidence, product=product)
    return best


def generate_final_filename(sku: str, existing_filenames: List[str], extension: str = "webp") -> str:
    base = sku.lower()
    name = f"{base}.{extension}"
    counter = 1
    while name in existing_filenames:
        name = f"{base}_{counter}.{extension}"
        counter += 1
    return name


def convert_to_webp(data: bytes, quality: int = 80) -> bytes:
    img = Image.open(io.BytesIO(data))
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")

    output = io.BytesIO()
    img.save(output, format="WEBP", quality=quality)
    return output.getvalue()


def rgb_to_color_name(r: int, g: int, b: int) -> str:
    high = max(r, g, b)
    low = min(r, g, b)
    brightness = (high + low) / 2

    if brightness < 50:
        return "Black"
    if brightness > 200:
        return "White"
    if high - low < 30:
        return "Light Gray" if brightness > 150 else "Gray"

    if r > g and r > b:
        if g > b:
            return "Pink" if r > 180 else "Red"
        return "Red"
    if g > r and g > b:
        return "Light Green" if g > 180 else "Green"
    if b > r and b > g:
        return "Light Blue" if b > 180 else "Blue"
    if r > 150 and g > 150:
        return "Yellow"
    if r > 100 and b > 100:
        return "Purple"
    if g > 100 and b > 100:
        return "Cyan"
    return "Mixed Color"


def product_type_from_dimensions(width: int, height: int) -> Tuple[str, float]:
    aspect = width / height
    if 1.5 < aspect < 2.0:
        return "Textile/Throw", 0.7
    if 0.8 < aspect < 1.2:
        if width * height > 500000:
            return "Large Decor Item", 0.6
        return "Small Decor Item", 0.6
    if 0.3 < aspect < 0.7:
        return "Tall Item/Candle", 0.7
    if aspect > 2.0:
        return "Wide Item/Textile", 0.6
    return "General Product", 0.4


def analyze_image_basic(data: bytes) -> ImageAnalysis:
    try:
        img = Image.open(io.BytesIO(data))
        width, height = img.size
        sample = img.convert("RGB")
        sample.thumbnail((300, 300))
    except Exception as e:
        log.warning(f"Could not analyse image: {e}")
        return ImageAnalysis("Unknown", "Unknown", 0.1, ["Failed to load image"])

    # Every 10th pixel
    raw = sample.tobytes()
    reds, greens, blues = raw[0::30], raw[1::30], raw[2::30]
    count = len(reds)
    r = int(sum(reds) / count + 0.5)
    g = int(sum(greens) / count + 0.5)
    b = int(sum(blues) / count + 0.5)

    product_type, type_confidence = product_type_from_dimensions(width, height)
    return ImageAnalysis(
        product_type=product_type,
        color=rgb_to_color_name(r, g, b),
        confidence=max(type_confidence, 0.7),
        additional_info=[
            f"Dimensions: {width}x{height}",
            f"Aspect ratio: {width / height:.2f}",
            f"Dominant RGB: rgb({r}, {g}, {b})",
        ],
    )


def upload_to_storage(supabase, bucket_name: str, filename: str, data: bytes) -> str:
    supabase.storage.from_(bucket_name).upload(
        path=filename,
        file=data,
        file_options={"content-type": "image/webp", "upsert": "true"},
    )
    return supabase.storage.from_(bucket_name).get_public_url(filename)


def search_items_with_logos(supabase, skus: List[str], company_id: str) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase.table("items")
            .select("sku,name,image_url,colour,category,brands!inner(brand_name,logo_url)")
            .in_("sku", skus)
            .eq("brands.company_id", company_id)
            .eq("status", "active")
            .execute()
        )
    except Exception as e:
        log.error(f"Error searching items with logos: {e}")
        return []

    items = []
    for row in getattr(res, "data", None) or []:
        brand = row.get("brands") or {}
        if isinstance(brand, list):
            brand = brand[0] if brand else {}
        items.append({
            "sku": row.get("sku"),
            "name": row.get("name"),
            "brand_name": brand.get("brand_name") or "Unknown",
            "image_url": row.get("image_url"),
            "brand_logo_url": brand.get("logo_url"),
            "colour": row.get("colour"),
            "category": row.get("category"),
        })
    return items


def _update_item(supabase, sku: str, values: Dict[str, Any]) -> Optional[str]:
    """Apply an items update; return a warning message on failure."""
    try:
        supabase.table("items").update(values).eq("sku", sku).execute()
        log.info(f"Updated item data for SKU {sku}: {values}")
        return None
    except Exception as e:
        log.error(f"Failed to update item data for SKU {sku}: {e}")
        return f"Could not update {', '.join(values)} for {sku}: {e}"


def process_image(
    supabase,
    filename: str,
    data: bytes,
    available_skus: List[ProductInfo],
    existing_filenames: List[str],
    brand_name: str,
    company_id: str,
) -> ImageProcessingResult:
    match = match_sku_from_filename(filename, available_skus)
    if not match:
        return ImageProcessingResult(False, filename, error="No matching SKU found in filename")

    final_filename = generate_final_filename(match.sku, existing_filenames)

    try:
        webp = convert_to_webp(data)
    except Exception as e:
        return ImageProcessingResult(False, filename, matched_sku=match.sku, error=f"WebP conversion failed: {e}")

    analysis = analyze_image_basic(data)
    warnings = []

    detected = {}
    if analysis.color != "Unknown":
        detected["colour"] = analysis.color
    if analysis.product_type != "Unknown":
        detected["category"] = analysis.product_type
    if detected:
        warning = _update_item(supabase, match.sku, detected)
        if warning:
            warnings.append(warning)

    try:
        url = upload_to_storage(supabase, brand_name, final_filename, webp)
    except Exception as e:
        log.error(f"Error uploading {final_filename} to {brand_name}: {e}")
        return ImageProcessingResult(
            False, filename, final_filename=final_filename, matched_sku=match.sku, error=f"Upload failed: {e}", warnings=warnings
        )

    warning = _update_item(supabase, match.sku, {"image_url": url})
    if warning:
        warnings.append(warning)

    details = search_items_with_logos(supabase, [match.sku], company_id)
    existing_filenames.append(final_filename)

    return ImageProcessingResult(
        success=True,
        original_filename=filename,
        final_filename=final_filename,
        matched_sku=match.sku,
        product_type=analysis.product_type,
        detected_color=analysis.color,
        confidence=min(match.confidence, analysis.confidence),
        webp_url=url,
        warnings=warnings,
        item_details=details[0] if details else None,
    )


def process_batch_images(
    supabase,
    files: List[Tuple[str, bytes]],
    company_id: str,
    brand_id: Optional[str] = None,
    on_progress: Optional[Callable[[BatchUploadProgress], None]] = None,
) -> BatchUploadProgress:
    progress = BatchUploadProgress(total=len(files))
    existing_filenames: List[str] = []

    available = get_product_skus(supabase, company_id, brand_id)
    brand_name = available[0].brand_name if available else "Unknown"

    for i, (filename, data) in enumerate(files):
        progress.current = filename
        progress.processed = i
        if on_progress:
            on_progress(progress)

        try:
            result = process_image(supabase, filename, data, available, existing_filenames, brand_name, company_id)
        except Exception as e:
            log.error(f"Unexpected error processing {filename}: {e}")
            result = ImageProcessingResult(False, filename, error=str(e))

        progress.results.append(result)
        if not result.success and result.error:
            progress.errors.append(f"{filename}: {result.error}")

    progress.processed = len(files)
    progress.current = ""
    if on_progress:
        on_progress(progress)

    log.info(f"Processed {len(files)} images, {len(progress.errors)} errors")
    return progress


def show_image_management(supabase, company_id: str, brands: List[Dict[str, Any]]):
    """Streamlit UI for batch product image upload"""
    st.title("🖼️ Image Management")
    st.caption("Upload product photos; files are matched to SKUs by filename and stored as WebP.")

    if not brands:
        st.warning("No brands found for your company.")
        return

    brand_lookup = {b["brand_name"]: b["id"] for b in brands}
    brand_label = st.selectbox("Brand", list(brand_lookup.keys()))

    uploaded = st.file_uploader(
        "Choose product images",
        type=["png", "jpg", "jpeg", "webp"],
        accept_multiple_files=True,
        help="Include the SKU in each filename, e.g. ABC-123_front.jpg",
    )

    if uploaded and st.button("📤 Process & Upload", type="primary"):
        bar = st.progress(0.0)

        def _update(p: BatchUploadProgress):
            bar.progress(p.processed / p.total if p.total else 1.0, text=p.current or "Done")

        files = [(f.name, f.getvalue()) for f in uploaded]
        with st.spinner("Processing images..."):
            result = process_batch_images(supabase, files, company_id, brand_lookup[brand_label], _update)

        ok = sum(1 for r in result.results if r.success)
        st.success(f"✅ Uploaded {ok} of {result.total} images")
        for err in result.errors:
            st.error(err)

        rows = [{
            "File": r.original_filename,
            "SKU": r.matched_sku or "",
            "Saved as": r.final_filename,
            "Color": r.detected_color or "",
            "Type": r.product_type or "",
            "Confidence": r.confidence,
            "URL": r.webp_url or "",
        } for r in result.results]
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

        for r in result.results:
            for w in r.warnings:
                st.warning(w)
