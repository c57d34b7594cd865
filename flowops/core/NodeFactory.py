"""
Node identity and initial field templates.

The template table is the only contract between the engine and the node
kinds drawn on the canvas. Propagation walks a fixed list of field names
rather than a node's own keys, so adding a kind here with a brand new field
never requires touching the engine.
"""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .Types import FieldMap, NodeCategory, PayloadKind

_SUFFIX_RE = re.compile(r"-(\d+)$")

FALLBACK_FIELDS: FieldMap = {"inputValue": ""}


class IdCounter:
    """
    Monotonic counter used to mint node ids.

    Owned by the graph session and passed into every minting call instead of
    living in module state.
    """

    def __init__(self, start: int = 1):
        self.value = max(1, int(start))

    def __repr__(self):
        return f"IdCounter({self.value})"

    def take(self) -> int:
        current = self.value
        self.value += 1
        return current

    def rebase(self, next_value: int) -> None:
        # Only used after a full replace, when no old id can still be on the canvas.
        self.value = max(1, int(next_value))

    def raise_to(self, next_value: int) -> None:
        self.value = max(self.value, int(next_value))

    def reset(self) -> None:
        self.value = 1


@dataclass(frozen=True)
class NodeTypeSpec:
    type_name: str
    category: NodeCategory
    label: str
    description: str
    input_kind: PayloadKind
    output_kind: PayloadKind
    initial_fields: FieldMap

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type_name,
            "category": self.category.value,
            "label": self.label,
            "description": self.description,
            "inputKind": self.input_kind.value,
            "outputKind": self.output_kind.value,
            "initialData": copy.deepcopy(self.initial_fields),
        }


NODE_TYPES: Dict[str, NodeTypeSpec] = {}


def register_node_type(type_name: str,
                       category: NodeCategory,
                       label: str,
                       description: str,
                       input_kind: PayloadKind,
                       output_kind: PayloadKind,
                       initial_fields: FieldMap) -> NodeTypeSpec:
    if type_name in NODE_TYPES:
        raise ValueError(f"Node type '{type_name}' is already registered.")
    spec = NodeTypeSpec(type_name, category, label, description, input_kind, output_kind, initial_fields)
    NODE_TYPES[type_name] = spec
    return spec


# ── Sources ──────────────────────────────────────────────────────────────────

S, O, OUT, U = NodeCategory.SOURCE, NodeCategory.OPERATION, NodeCategory.OUTPUT, NodeCategory.UTILITY
K = PayloadKind

register_node_type("textInput", S, "Text Input", "Type or paste text directly.",
                   K.NONE, K.TEXT, {"value": ""})
register_node_type("urlInput", S, "URL Input", "Fetches a URL and extracts the article text.",
                   K.NONE, K.TEXT, {"value": "", "articleText": ""})
register_node_type("imageUpload", S, "Image Upload", "Upload an image file from your device.",
                   K.NONE, K.IMAGE, {"imageUrl": ""})
register_node_type("audioUpload", S, "Audio Upload", "Upload an MP3, M4A, or WAV audio file.",
                   K.NONE, K.AUDIO, {"audioBase64": "", "mimeType": "", "filename": ""})
register_node_type("videoUpload", S, "Video Upload", "Upload an MP4, MOV, or WebM video file.",
                   K.NONE, K.VIDEO, {"videoBase64": "", "mimeType": "", "filename": ""})
register_node_type("pdfUpload", S, "PDF Upload", "Upload a PDF document.",
                   K.NONE, K.PDF, {"pdfBase64": "", "filename": ""})
register_node_type("podcastRSS", S, "Podcast", "Load an RSS feed, pick an episode, or paste an episode link.",
                   K.NONE, K.AUDIO, {"feedUrl": "", "audioUrl": "", "title": "", "episodes": []})

# ── Operations ───────────────────────────────────────────────────────────────

register_node_type("transcribe", O, "Transcribe Audio", "Converts audio to text with speaker labels.",
                   K.AUDIO, K.TEXT, {"inputValue": "", "transcript": ""})
register_node_type("generateReport", O, "Generate Report", "Creates a structured report from a transcript or text.",
                   K.TEXT, K.REPORT, {"inputValue": "", "report": None})
register_node_type("generateCopy", O, "Generate Ad Copy", "Generates ad copy variants per angle.",
                   K.REPORT, K.JSON, {"inputValue": "", "copy": None})
register_node_type("generateLandingPages", O, "Landing Pages", "Creates landing page content for each angle.",
                   K.REPORT, K.JSON, {"inputValue": "", "landingPages": None})
register_node_type("generateAdvertorial", O, "Advertorial Article", "Writes a long-form advertorial from a report.",
                   K.REPORT, K.TEXT, {"inputValue": "", "headline": "", "content": ""})
register_node_type("generateAdvertorialCopy", O, "Advertorial Ad Copy", "Creates ad copy promoting an advertorial.",
                   K.TEXT, K.JSON, {"inputValue": "", "adCopy": None})
register_node_type("generateVisualConcepts", O, "Visual Concepts", "Creates visual concept descriptions for image generation.",
                   K.REPORT, K.JSON, {"inputValue": "", "concepts": []})
register_node_type("summarize", O, "Summarize Text", "Condenses text to a shorter summary.",
                   K.TEXT, K.TEXT, {"inputValue": "", "summary": ""})
register_node_type("extractKeyPoints", O, "Key Points", "Pulls out the main bullet points from text.",
                   K.TEXT, K.TEXT, {"inputValue": "", "points": []})
register_node_type("generateMetaHeadlines", O, "Meta Ad Headlines", "Generates primary texts and headlines for Meta ads.",
                   K.TEXT, K.TEXT, {"inputValue": ""})
register_node_type("generateYouTubeThumbnails", O, "YT Thumbnails", "Generates thumbnail images from a transcript.",
                   K.TEXT, K.IMAGE, {"inputValue": ""})
register_node_type("iphonePhoto", O, "Generate Image", "Generates a photorealistic image from text.",
                   K.TEXT, K.IMAGE, {"inputValue": "", "imageUrl": "", "prompt": "", "loading": False})
register_node_type("animate", O, "Image to Video", "Animates a still image into a short video.",
                   K.IMAGE, K.VIDEO, {"imageUrl": "", "inputValue": "", "videoUrl": ""})
register_node_type("textOverlay", O, "Text on Image", "Adds text overlay on top of an image.",
                   K.IMAGE, K.IMAGE, {"imageUrl": "", "inputValue": "", "outputUrl": ""})
register_node_type("crop", O, "Crop Image/Video", "Crops to a target aspect ratio.",
                   K.ANY, K.ANY, {"imageUrl": "", "videoUrl": "", "outputUrl": ""})

# ── Outputs ──────────────────────────────────────────────────────────────────

register_node_type("imageOutput", OUT, "Media Output", "Displays an image or video result.",
                   K.ANY, K.DISPLAY, {"imageUrl": "", "prompt": ""})
register_node_type("reportPreview", OUT, "Report Preview", "Renders a formatted preview of a report.",
                   K.REPORT, K.DISPLAY, {"report": None})
register_node_type("copyExport", OUT, "Copy Export", "Shows ad copy variants with a copy button.",
                   K.JSON, K.DISPLAY, {"copy": None})
register_node_type("landingPagePreview", OUT, "Landing Preview", "Previews landing page content by angle.",
                   K.JSON, K.DISPLAY, {"landingPages": None})
register_node_type("advertorialPreview", OUT, "Advertorial Preview", "Renders an advertorial article preview.",
                   K.TEXT, K.DISPLAY, {"headline": "", "content": ""})
register_node_type("imageGallery", OUT, "Image Gallery", "Shows a grid of generated images.",
                   K.IMAGE, K.DISPLAY, {"images": []})

# ── Utilities ────────────────────────────────────────────────────────────────

register_node_type("splitReportSections", U, "Split Sections", "Splits a report into individual sections.",
                   K.REPORT, K.JSON, {"report": None, "sections": []})
register_node_type("merge", U, "Merge Data", "Combines up to 4 inputs into a single array.",
                   K.ANY, K.JSON, {"inputs": []})
register_node_type("filterByAngle", U, "Filter by Angle", "Picks one angle from copy data.",
                   K.JSON, K.JSON, {"inputValue": None, "angle": "fear"})
register_node_type("platformToggle", U, "Platform Toggle", "Switches between Google and Meta ad platforms.",
                   K.NONE, K.JSON, {"platform": "google"})

del S, O, OUT, U, K


# ── Factory functions ────────────────────────────────────────────────────────

def create_id(type_tag: str, counter: IdCounter) -> str:
    return f"{type_tag}-{counter.take()}"


def initial_fields(type_tag: str) -> FieldMap:
    """Fresh copy of the template for *type_tag*; unknown tags get ``{"inputValue": ""}``."""
    spec = NODE_TYPES.get(type_tag)
    return copy.deepcopy(spec.initial_fields if spec else FALLBACK_FIELDS)


def numeric_suffix(node_id: str) -> Optional[int]:
    match = _SUFFIX_RE.search(node_id)
    return int(match.group(1)) if match else None


def next_counter_for(node_ids: Iterable[str]) -> int:
    """max(numeric suffix) + 1 over *node_ids*, or 1 when none of them has one."""
    suffixes: List[int] = [n for n in (numeric_suffix(i) for i in node_ids) if n is not None]
    return max(suffixes) + 1 if suffixes else 1


def list_node_types(category: Optional[NodeCategory] = None) -> List[NodeTypeSpec]:
    accept: Callable[[NodeTypeSpec], bool] = (lambda s: True) if category is None else (lambda s: s.category == category)
    return [s for s in NODE_TYPES.values() if accept(s)]
