"""
Preset flows: fixed node/edge templates that replace the whole canvas.

Ids inside a preset follow the "<name>-<n>" shape so the id counter can be
rebased past them once loaded.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from logging import getLogger

from .GraphPrimitives import Edge, Graph, GraphNode
from .NodeFactory import IdCounter, next_counter_for

logger = getLogger(__name__)

ConfirmFn = Callable[[], bool]


@dataclass(frozen=True)
class PresetFlow:
    name: str
    description: str
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def build_nodes(self) -> List[GraphNode]:
        # deep copies, so canvas edits never leak back into the template
        return [GraphNode.from_dict(copy.deepcopy(n)) for n in self.nodes]

    def build_edges(self) -> List[Edge]:
        return [Edge.from_dict(e) for e in self.edges]

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "nodeCount": self.node_count,
            "edgeCount": self.edge_count,
        }


def _n(node_id: str, type_name: str, x: float, y: float, **data: Any) -> Dict[str, Any]:
    return {"id": node_id, "type": type_name, "position": {"x": x, "y": y}, "data": data}


def _e(edge_id: str, source: str, target: str) -> Dict[str, Any]:
    return {"id": edge_id, "source": source, "target": target, "type": "smoothstep"}


_PHOTO = dict(inputValue="", imageUrl="", prompt="", loading=False)
_OUTPUT = dict(imageUrl="", prompt="")
_ANIMATE = dict(imageUrl="", inputValue="", videoUrl="")


PRESET_FLOWS: List[PresetFlow] = [
    PresetFlow(
        "Text to Photo", "Generate photo from text",
        nodes=[
            _n("input-1", "textInput", 100, 200, value=""),
            _n("photo-1", "iphonePhoto", 400, 200, **_PHOTO),
            _n("output-1", "imageOutput", 700, 200, **_OUTPUT),
        ],
        edges=[_e("e1-2", "input-1", "photo-1"), _e("e2-3", "photo-1", "output-1")],
    ),
    PresetFlow(
        "URL to Photo", "Article to photo",
        nodes=[
            _n("url-1", "urlInput", 100, 200, value="", articleText=""),
            _n("photo-1", "iphonePhoto", 420, 200, **_PHOTO),
            _n("output-1", "imageOutput", 720, 200, **_OUTPUT),
        ],
        edges=[_e("e1-2", "url-1", "photo-1"), _e("e2-3", "photo-1", "output-1")],
    ),
    PresetFlow(
        "Photo to Video", "Animate an uploaded image",
        nodes=[
            _n("upload-1", "imageUpload", 100, 200, imageUrl=""),
            _n("animate-1", "animate", 400, 200, **_ANIMATE),
            _n("output-1", "imageOutput", 700, 200, **_OUTPUT),
        ],
        edges=[_e("e1-2", "upload-1", "animate-1"), _e("e2-3", "animate-1", "output-1")],
    ),
    PresetFlow(
        "Text to Video", "Generate photo then animate",
        nodes=[
            _n("input-1", "textInput", 100, 200, value=""),
            _n("photo-1", "iphonePhoto", 400, 200, **_PHOTO),
            _n("animate-1", "animate", 700, 200, **_ANIMATE),
            _n("output-1", "imageOutput", 1000, 200, **_OUTPUT),
        ],
        edges=[
            _e("e1-2", "input-1", "photo-1"),
            _e("e2-3", "photo-1", "animate-1"),
            _e("e3-4", "animate-1", "output-1"),
        ],
    ),
    PresetFlow(
        "Video for Meta", "Generate video and crop to 4:5",
        nodes=[
            _n("input-1", "textInput", 100, 200, value=""),
            _n("photo-1", "iphonePhoto", 400, 200, **_PHOTO),
            _n("animate-1", "animate", 700, 200, **_ANIMATE),
            _n("crop-1", "crop", 1000, 200, imageUrl="", videoUrl="", outputUrl=""),
            _n("output-1", "imageOutput", 1300, 200, **_OUTPUT),
        ],
        edges=[
            _e("e1-2", "input-1", "photo-1"),
            _e("e2-3", "photo-1", "animate-1"),
            _e("e3-4", "animate-1", "crop-1"),
            _e("e4-5", "crop-1", "output-1"),
        ],
    ),
    PresetFlow(
        "Podcast to Report", "Transcribe podcast, then generate report",
        nodes=[
            _n("podcast-1", "podcastRSS", 50, 200, audioUrl="", title=""),
            _n("transcribe-1", "transcribe", 350, 200, inputValue="", transcript=""),
            _n("report-1", "generateReport", 650, 200, inputValue="", report=None),
            _n("preview-1", "reportPreview", 950, 200, report=None),
        ],
        edges=[
            _e("e1-2", "podcast-1", "transcribe-1"),
            _e("e2-3", "transcribe-1", "report-1"),
            _e("e3-4", "report-1", "preview-1"),
        ],
    ),
    PresetFlow(
        "FWP Pipeline", "Podcast to ads (full pipeline)",
        nodes=[
            _n("podcast-1", "podcastRSS", 50, 200, feedUrl="", audioUrl="", title=""),
            _n("transcribe-1", "transcribe", 320, 200, inputValue="", transcript=""),
            _n("report-1", "generateReport", 590, 200, inputValue="", report=None),
            _n("copy-1", "generateCopy", 860, 100, inputValue="", copy=None),
            _n("landing-1", "generateLandingPages", 860, 300, inputValue="", landingPages=None),
            _n("concepts-1", "generateVisualConcepts", 860, 500, inputValue="", concepts=[]),
            _n("copyExport-1", "copyExport", 1130, 100, copy=None),
            _n("landingPreview-1", "landingPagePreview", 1130, 300, landingPages=None),
            _n("photo-1", "iphonePhoto", 1130, 500, **_PHOTO),
            _n("gallery-1", "imageGallery", 1400, 500, images=[]),
        ],
        edges=[
            _e("e1-2", "podcast-1", "transcribe-1"),
            _e("e2-3", "transcribe-1", "report-1"),
            _e("e3-4", "report-1", "copy-1"),
            _e("e3-5", "report-1", "landing-1"),
            _e("e3-6", "report-1", "concepts-1"),
            _e("e4-7", "copy-1", "copyExport-1"),
            _e("e5-8", "landing-1", "landingPreview-1"),
            _e("e6-9", "concepts-1", "photo-1"),
            _e("e9-10", "photo-1", "gallery-1"),
        ],
    ),
]

# Expected sizes, checked by the test suite against PRESET_FLOWS.
PRESET_EXPECTATIONS: Dict[str, Dict[str, int]] = {
    "Text to Photo": {"nodes": 3, "edges": 2},
    "URL to Photo": {"nodes": 3, "edges": 2},
    "Photo to Video": {"nodes": 3, "edges": 2},
    "Text to Video": {"nodes": 4, "edges": 3},
    "Video for Meta": {"nodes": 5, "edges": 4},
    "Podcast to Report": {"nodes": 4, "edges": 3},
    "FWP Pipeline": {"nodes": 10, "edges": 9},
}


def find_preset(name: str) -> Optional[PresetFlow]:
    wanted = name.strip().lower()
    for preset in PRESET_FLOWS:
        if preset.name.lower() == wanted:
            return preset
    return None


def load_preset(graph: Graph,
                counter: IdCounter,
                preset: PresetFlow,
                confirm: Optional[ConfirmFn] = None) -> bool:
    """
    Replace the whole graph with *preset*.

    A non-empty canvas is only replaced when *confirm* is given and returns
    True; otherwise nothing changes and False is returned. On success the
    counter is rebased past every numeric suffix in the preset.
    """
    nodes = preset.build_nodes()
    edges = preset.build_edges()

    # confirm() may block on a user, so it runs without the graph lock
    approved = False
    if not graph.is_empty():
        if confirm is None or not confirm():
            logger.info("preset '%s' not loaded: replace was not confirmed", preset.name)
            return False
        approved = True

    with graph.lock:
        if not approved and not graph.is_empty():
            logger.info("preset '%s' not loaded: canvas filled up before the replace", preset.name)
            return False
        graph.replace(nodes, edges)
        counter.rebase(next_counter_for(n.id for n in nodes))

    logger.info("loaded preset '%s' (%d nodes, %d edges)", preset.name, len(nodes), len(edges))
    return True
