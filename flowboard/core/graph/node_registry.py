"""
Node-type registry for Flowboard
Maps node type strings to node definitions (category, default ports and
parameters, provider binding). Provider bindings are resolved here, once,
so callers never branch on node type strings themselves.
"""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from .models import Node, Port, Position, Dimensions, new_id, utc_now


class NodeCategory(str, Enum):
    INPUT = "input"
    IMAGE_GEN = "imageGen"
    VIDEO_GEN = "videoGen"
    THREE_D = "threeD"
    CHARACTER = "character"
    STYLE = "style"
    LOGIC = "logic"
    AUDIO = "audio"
    OUTPUT = "output"
    COMPOSITE = "composite"
    NARRATIVE = "narrative"
    CUSTOM = "custom"


class BindingKind(str, Enum):
    """
    How a node reaches a provider

    NONE: pure input/logic/output node, its value lives in its parameters
    UNIFORM: generic provider execute call
    DEDICATED: node-specific adapter (named by ProviderBinding.adapter)
    """
    NONE = "none"
    UNIFORM = "uniform"
    DEDICATED = "dedicated"


@dataclass(frozen=True)
class ProviderBinding:
    kind: BindingKind
    adapter: Optional[str] = None

    def __post_init__(self):
        if self.kind == BindingKind.DEDICATED and not self.adapter:
            raise ValueError("Dedicated provider bindings need an adapter name")


NO_PROVIDER = ProviderBinding(BindingKind.NONE)
UNIFORM_PROVIDER = ProviderBinding(BindingKind.UNIFORM)

# Category -> binding used when a definition does not name one explicitly.
# Every NodeCategory must appear here; checked below at import time.
CATEGORY_BINDINGS: Dict[NodeCategory, ProviderBinding] = {
    NodeCategory.INPUT: NO_PROVIDER,
    NodeCategory.IMAGE_GEN: UNIFORM_PROVIDER,
    NodeCategory.VIDEO_GEN: UNIFORM_PROVIDER,
    NodeCategory.THREE_D: UNIFORM_PROVIDER,
    NodeCategory.CHARACTER: UNIFORM_PROVIDER,
    NodeCategory.STYLE: UNIFORM_PROVIDER,
    NodeCategory.LOGIC: NO_PROVIDER,
    NodeCategory.AUDIO: UNIFORM_PROVIDER,
    NodeCategory.OUTPUT: NO_PROVIDER,
    NodeCategory.COMPOSITE: UNIFORM_PROVIDER,
    NodeCategory.NARRATIVE: UNIFORM_PROVIDER,
    NodeCategory.CUSTOM: UNIFORM_PROVIDER,
}

_missing = set(NodeCategory) - set(CATEGORY_BINDINGS)
if _missing:
    raise RuntimeError(f"Categories without a provider binding: {sorted(c.value for c in _missing)}")


@dataclass
class NodeDefinition:
    """Definition of a node type (like a class definition)"""
    node_type: str
    category: NodeCategory
    label: str
    default_inputs: List[Port] = field(default_factory=list)
    default_outputs: List[Port] = field(default_factory=list)
    default_parameters: Dict[str, Any] = field(default_factory=dict)
    binding: Optional[ProviderBinding] = None
    description: str = ""

    def __post_init__(self):
        if self.binding is None:
            self.binding = CATEGORY_BINDINGS[self.category]

    def instantiate(
        self,
        node_id: Optional[str] = None,
        position: Optional[Position] = None,
        board_id: Optional[str] = None,
        label: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        dimensions: Optional[Dimensions] = None,
    ) -> Node:
        """Build a fresh node with this definition's default ports and parameters"""
        params = copy.deepcopy(self.default_parameters)
        if parameters:
            params.update(copy.deepcopy(parameters))
        now = utc_now()
        return Node(
            id=node_id or new_id("node"),
            node_type=self.node_type,
            category=self.category.value,
            position=position or Position(),
            dimensions=dimensions or Dimensions(),
            inputs=copy.deepcopy(self.default_inputs),
            outputs=copy.deepcopy(self.default_outputs),
            parameters=params,
            board_id=board_id,
            label=label or self.label,
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeType": self.node_type,
            "category": self.category.value,
            "label": self.label,
            "description": self.description,
            "defaultInputs": [p.to_dict() for p in self.default_inputs],
            "defaultOutputs": [p.to_dict() for p in self.default_outputs],
            "defaultParameters": copy.deepcopy(self.default_parameters),
            "providerBinding": {"kind": self.binding.kind.value, "adapter": self.binding.adapter},
        }


# Registry mapping node type -> definition
NODE_DEFINITIONS: Dict[str, NodeDefinition] = {}


def register_node_definition(definition: NodeDefinition):
    """
    Register a node type

    Args:
        definition: Definition to register; replaces any previous one for the same type
    """
    NODE_DEFINITIONS[definition.node_type] = definition


def get_node_definition(node_type: str) -> NodeDefinition:
    """
    Get the definition for a node type

    Unknown types resolve to a generic custom definition: one multi `any`
    input, one `any` output, uniform provider execution.

    Args:
        node_type: String identifier for the node type

    Returns:
        NodeDefinition (never None)
    """
    definition = NODE_DEFINITIONS.get(node_type)
    if definition is not None:
        return definition
    return NodeDefinition(
        node_type=node_type,
        category=NodeCategory.CUSTOM,
        label=node_type,
        default_inputs=[Port("input", "Input", "any", multi=True)],
        default_outputs=[Port("output", "Output", "any")],
    )


def list_node_definitions() -> List[NodeDefinition]:
    return list(NODE_DEFINITIONS.values())


def _p(port_id: str, name: str, port_type: str, required: bool = False, multi: bool = False) -> Port:
    return Port(port_id, name, port_type, required=required, multi=multi)


def _dedicated(adapter: str) -> ProviderBinding:
    return ProviderBinding(BindingKind.DEDICATED, adapter)


def _register_builtin_definitions():
    """Register built-in node types"""
    builtin = [
        # Inputs
        NodeDefinition("textInput", NodeCategory.INPUT, "Text Input",
                       default_outputs=[_p("text", "Text", "text")],
                       default_parameters={"text": ""}),
        NodeDefinition("imageUpload", NodeCategory.INPUT, "Image Upload",
                       default_outputs=[_p("image", "Image", "image")],
                       default_parameters={"file": None}),
        NodeDefinition("videoUpload", NodeCategory.INPUT, "Video Upload",
                       default_outputs=[_p("video", "Video", "video")],
                       default_parameters={"file": None}),
        NodeDefinition("audioUpload", NodeCategory.INPUT, "Audio Upload",
                       default_outputs=[_p("audio", "Audio", "audio")],
                       default_parameters={"file": None}),
        NodeDefinition("referenceImage", NodeCategory.INPUT, "Reference Images",
                       default_outputs=[_p("images", "Images", "image", multi=True)],
                       default_parameters={"files": []}),
        NodeDefinition("characterReference", NodeCategory.INPUT, "Character Reference",
                       default_outputs=[_p("character", "Character", "character")],
                       default_parameters={"files": [], "characterName": ""}),
        # Image generation
        NodeDefinition("flux2Pro", NodeCategory.IMAGE_GEN, "FLUX.2 Pro",
                       default_inputs=[_p("prompt", "Prompt", "text", required=True),
                                       _p("reference", "Reference", "image")],
                       default_outputs=[_p("image", "Image", "image")],
                       default_parameters={"width": 1024, "height": 1024, "guidance": 3.5, "numImages": 1}),
        NodeDefinition("flux2Dev", NodeCategory.IMAGE_GEN, "FLUX.2 Dev",
                       default_inputs=[_p("prompt", "Prompt", "text", required=True),
                                       _p("style", "Style LoRA", "style")],
                       default_outputs=[_p("image", "Image", "image")],
                       default_parameters={"width": 1024, "height": 1024, "steps": 28, "guidance": 3.5}),
        NodeDefinition("nanoBananaPro", NodeCategory.IMAGE_GEN, "Nano Banana Pro",
                       default_inputs=[_p("prompt", "Prompt", "text", required=True),
                                       _p("references", "References", "image", multi=True),
                                       _p("characters", "Characters", "character", multi=True)],
                       default_outputs=[_p("image", "Image", "image")],
                       default_parameters={"width": 1024, "height": 1024, "faceWeight": 0.8, "styleWeight": 0.6}),
        NodeDefinition("fluxKontext", NodeCategory.IMAGE_GEN, "FLUX Kontext",
                       default_inputs=[_p("image", "Source Image", "image", required=True),
                                       _p("prompt", "Edit Prompt", "text", required=True)],
                       default_outputs=[_p("image", "Image", "image")],
                       default_parameters={"strength": 0.8}),
        # Video generation
        NodeDefinition("kling26T2V", NodeCategory.VIDEO_GEN, "Kling 2.6 Text-to-Video",
                       default_inputs=[_p("prompt", "Prompt", "text", required=True)],
                       default_outputs=[_p("video", "Video", "video"), _p("audio", "Audio", "audio")],
                       default_parameters={"duration": 5, "aspectRatio": "16:9", "enableAudio": True}),
        NodeDefinition("kling26I2V", NodeCategory.VIDEO_GEN, "Kling 2.6 Image-to-Video",
                       default_inputs=[_p("image", "Source Image", "image", required=True),
                                       _p("prompt", "Motion Prompt", "text")],
                       default_outputs=[_p("video", "Video", "video")],
                       default_parameters={"duration": 5, "motionIntensity": 0.5}),
        NodeDefinition("klingAvatar", NodeCategory.VIDEO_GEN, "Kling Avatar",
                       default_inputs=[_p("image", "Portrait", "image", required=True),
                                       _p("audio", "Audio", "audio", required=True)],
                       default_outputs=[_p("video", "Video", "video")],
                       default_parameters={"lipSyncStrength": 0.8}),
        # 3D
        NodeDefinition("meshy6", NodeCategory.THREE_D, "Meshy 6",
                       default_inputs=[_p("image", "Source Image", "image", required=True)],
                       default_outputs=[_p("mesh", "3D Mesh", "mesh3d")],
                       default_parameters={"targetPolycount": "medium", "generatePBR": True}),
        # Character and style
        NodeDefinition("characterLock", NodeCategory.CHARACTER, "Character Lock",
                       default_inputs=[_p("references", "Reference Images", "image", required=True, multi=True)],
                       default_outputs=[_p("character", "Character Profile", "character")],
                       default_parameters={"characterName": "", "preserveStrength": 0.8, "extractTraits": True}),
        NodeDefinition("styleDNA", NodeCategory.STYLE, "Style DNA",
                       default_inputs=[_p("images", "Style References", "image", required=True, multi=True)],
                       default_outputs=[_p("style", "Style", "style")],
                       default_parameters={"styleName": ""}),
        NodeDefinition("styleTransfer", NodeCategory.STYLE, "Style Transfer",
                       default_inputs=[_p("image", "Content Image", "image", required=True),
                                       _p("style", "Style", "style", required=True)],
                       default_outputs=[_p("image", "Image", "image")],
                       default_parameters={"strength": 0.7}),
        # Logic and output
        NodeDefinition("merge", NodeCategory.LOGIC, "Merge",
                       default_inputs=[_p("inputs", "Inputs", "any", multi=True)],
                       default_outputs=[_p("output", "Output", "any")]),
        NodeDefinition("audioGen", NodeCategory.AUDIO, "Audio Generation",
                       default_inputs=[_p("prompt", "Prompt", "text", required=True)],
                       default_outputs=[_p("audio", "Audio", "audio")],
                       default_parameters={"duration": 10}),
        NodeDefinition("preview", NodeCategory.OUTPUT, "Preview",
                       default_inputs=[_p("input", "Input", "any", multi=True)]),
        NodeDefinition("export", NodeCategory.OUTPUT, "Export",
                       default_inputs=[_p("input", "Input", "any", required=True)],
                       default_parameters={"format": "png"}),
        # Composite / fashion
        NodeDefinition("virtualTryOn", NodeCategory.COMPOSITE, "Virtual Try-On",
                       default_inputs=[_p("model", "Model Photo", "image", required=True),
                                       _p("garment", "Garment", "image", required=True)],
                       default_outputs=[_p("image", "Result", "image")],
                       default_parameters={"provider": "fashn", "category": "tops", "mode": "quality"},
                       binding=_dedicated("virtualTryOn")),
        NodeDefinition("clothesSwap", NodeCategory.COMPOSITE, "Clothes Swap",
                       default_inputs=[_p("person", "Person Image", "image", required=True),
                                       _p("garment", "Garment", "image"),
                                       _p("prompt", "Clothing Prompt", "text")],
                       default_outputs=[_p("image", "Result", "image")],
                       default_parameters={"category": "tops", "preserveIdentity": True},
                       binding=_dedicated("clothesSwap")),
        NodeDefinition("runwayAnimation", NodeCategory.COMPOSITE, "Runway Animation",
                       default_inputs=[_p("image", "Lookbook Image", "image", required=True)],
                       default_outputs=[_p("video", "Runway Video", "video")],
                       default_parameters={"animationType": "catwalk", "duration": 5, "cameraMotion": "follow"},
                       binding=_dedicated("runwayAnimation")),
        # Narrative
        NodeDefinition("storyGenesis", NodeCategory.NARRATIVE, "Story Genesis",
                       default_inputs=[_p("idea", "Core Idea", "text")],
                       default_outputs=[_p("story", "Story", "story"),
                                        _p("characters", "Characters", "character", multi=True),
                                        _p("outline", "Outline", "outline")],
                       default_parameters={"starterPrompt": "", "genre": "fantasy", "tone": "serious",
                                           "pov": "third-limited", "length": "short-story",
                                           "audience": "adult", "themes": []},
                       binding=_dedicated("storyGenesis")),
        NodeDefinition("storyStructure", NodeCategory.NARRATIVE, "Story Structure",
                       default_inputs=[_p("story", "Story", "story", required=True)],
                       default_outputs=[_p("outline", "Outline", "outline"),
                                        _p("beats", "Beats", "plotPoint")],
                       default_parameters={"framework": "three-act", "detailLevel": "detailed",
                                           "includeSubplots": True},
                       binding=_dedicated("storyStructure")),
        NodeDefinition("characterCreator", NodeCategory.NARRATIVE, "Character Creator",
                       default_inputs=[_p("concept", "Concept", "text"),
                                       _p("story", "Story", "story")],
                       default_outputs=[_p("character", "Character", "character")],
                       default_parameters={"concept": "", "depth": "standard", "generatePortrait": False},
                       binding=_dedicated("characterCreator")),
        NodeDefinition("sceneGenerator", NodeCategory.NARRATIVE, "Scene Writer",
                       default_inputs=[_p("concept", "Scene Concept", "text"),
                                       _p("story", "Story", "story"),
                                       _p("characters", "Characters", "character", multi=True),
                                       _p("location", "Location", "location")],
                       default_outputs=[_p("scene", "Scene", "scene"),
                                        _p("dialogue", "Dialogue", "dialogue")],
                       default_parameters={"concept": "", "format": "prose", "sceneType": "dramatic",
                                           "length": "medium"},
                       binding=_dedicated("sceneGenerator")),
        NodeDefinition("locationCreator", NodeCategory.NARRATIVE, "Location Creator",
                       default_inputs=[_p("concept", "Location Concept", "text")],
                       default_outputs=[_p("location", "Location", "location")],
                       default_parameters={"concept": "", "locationType": "urban", "mood": "mysterious"},
                       binding=_dedicated("locationCreator")),
        NodeDefinition("dialogueGenerator", NodeCategory.NARRATIVE, "Character Dialogue",
                       default_inputs=[_p("characters", "Characters", "character", required=True, multi=True),
                                       _p("situation", "Situation", "text")],
                       default_outputs=[_p("dialogue", "Dialogue", "dialogue")],
                       default_parameters={"situation": "", "dialogueType": "conversation", "format": "prose"},
                       binding=_dedicated("dialogueGenerator")),
        NodeDefinition("plotTwist", NodeCategory.NARRATIVE, "Plot Twist",
                       default_inputs=[_p("story", "Story", "story", required=True),
                                       _p("characters", "Characters", "character", multi=True)],
                       default_outputs=[_p("twist", "Twist", "plotPoint")],
                       default_parameters={"twistType": "betrayal", "impactLevel": "major"},
                       binding=_dedicated("plotTwist")),
        NodeDefinition("storyEnhancer", NodeCategory.NARRATIVE, "Story Enhancer",
                       default_inputs=[_p("content", "Content", "text"),
                                       _p("scene", "Scene", "scene")],
                       default_outputs=[_p("enhanced", "Enhanced", "text")],
                       default_parameters={"focus": ["prose", "pacing"], "preserveVoice": True},
                       binding=_dedicated("storyEnhancer")),
    ]
    for definition in builtin:
        register_node_definition(definition)


# Auto-register on import
_register_builtin_definitions()
