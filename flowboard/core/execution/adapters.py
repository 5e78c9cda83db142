"""
Provider adapters for node execution

Each adapter takes an AdapterContext and returns a normalized
ProviderResponse ({status, output, jobId, error}). The uniform adapter
forwards to the provider's generic execute call; dedicated adapters
validate their own required inputs, shape a small request for a
provider route and normalize the answer back.

Adapters are synchronous; the executor runs them off the event loop.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..graph.models import Node
from ..graph.node_registry import BindingKind, NodeDefinition
from ..errors import ExecutionPreconditionError
from ..types import ExecutePayload, GenerationProviderProtocol, ProviderResponse
from .resolver import is_valid_value


@dataclass
class AdapterContext:
    node: Node
    inputs: Dict[str, Any]
    parameters: Dict[str, Any]
    provider: GenerationProviderProtocol
    default_model: str

    def first(self, *keys: str, parameters: bool = True) -> Any:
        """First meaningful value among inputs[keys], then parameters[keys]"""
        for key in keys:
            if is_valid_value(self.inputs.get(key)):
                return self.inputs[key]
        if parameters:
            for key in keys:
                if is_valid_value(self.parameters.get(key)):
                    return self.parameters[key]
        return None

    def param(self, key: str, default: Any = None) -> Any:
        value = self.parameters.get(key)
        return default if value is None or value == "" else value


Adapter = Callable[[AdapterContext], ProviderResponse]

# Dedicated adapters by name (ProviderBinding.adapter)
ADAPTERS: Dict[str, Adapter] = {}


def register_adapter(name: str):
    """Decorator registering a dedicated adapter under `name`"""
    def decorator(func: Adapter) -> Adapter:
        ADAPTERS[name] = func
        return func
    return decorator


def select_adapter(definition: NodeDefinition) -> Optional[Adapter]:
    """
    Pick the adapter for a node definition

    Returns:
        None for nodes without a provider (their value lives in parameters),
        the uniform adapter, or the named dedicated adapter

    Raises:
        ValueError: if a dedicated binding names an unknown adapter
    """
    binding = definition.binding
    if binding.kind == BindingKind.NONE:
        return None
    if binding.kind == BindingKind.UNIFORM:
        return execute_uniform
    if binding.kind == BindingKind.DEDICATED:
        adapter = ADAPTERS.get(binding.adapter)
        if adapter is None:
            raise ValueError(f"No adapter registered for '{binding.adapter}' ({definition.node_type})")
        return adapter
    raise ValueError(f"Unhandled provider binding: {binding.kind}")


def execute_uniform(ctx: AdapterContext) -> ProviderResponse:
    """Generic provider execute call; a missing model falls back to selectedModel, then the default"""
    parameters = dict(ctx.parameters)
    if not parameters.get("model"):
        parameters["model"] = parameters.get("selectedModel") or ctx.default_model
    return ctx.provider.execute(ctx.node.id, ExecutePayload(inputs=ctx.inputs, parameters=parameters))


def _normalize(response: Mapping[str, Any], output: Dict[str, Any]) -> ProviderResponse:
    data = response.get("data")
    data = data if isinstance(data, Mapping) else {}
    errors = data.get("errors") or []
    success = data.get("success", response.get("success", True))
    error = (errors[0] if errors else None) or response.get("error")
    if not success:
        return ProviderResponse(status="error", output=None, error=error or "Provider request failed")
    return ProviderResponse(status="completed", output=output, error=error)


def _data(response: Mapping[str, Any]) -> Mapping[str, Any]:
    data = response.get("data")
    if isinstance(data, Mapping):
        return data
    return response


def _image_list(data: Mapping[str, Any]) -> List[Any]:
    images = data.get("images")
    return list(images) if isinstance(images, list) else []


def _first_url(images: List[Any]) -> Optional[str]:
    if not images:
        return None
    first = images[0]
    if isinstance(first, Mapping):
        return first.get("url")
    return first


# ============================================================================
# Fashion
# ============================================================================

@register_adapter("virtualTryOn")
def virtual_try_on(ctx: AdapterContext) -> ProviderResponse:
    model_image = ctx.first("model", "image", parameters=False) or ctx.param("modelImageUrl")
    garment_image = ctx.first("garment", parameters=False) or ctx.param("garmentImageUrl")
    if not model_image or not garment_image:
        raise ExecutionPreconditionError(
            "Virtual Try-On requires both a model photo and a garment image. Connect both inputs."
        )
    provider_name = ctx.param("provider", "fashn")
    response = ctx.provider.invoke("fashion/virtual-try-on", {
        "humanImageUrl": model_image,
        "garmentImageUrl": garment_image,
        "category": ctx.param("category", "tops"),
        "mode": ctx.param("mode", "quality"),
        "provider": provider_name,
    })
    images = _image_list(_data(response))
    return _normalize(response, {
        "images": images,
        "imageUrl": _first_url(images),
        "outputType": "image",
        "provider": provider_name,
    })


@register_adapter("clothesSwap")
def clothes_swap(ctx: AdapterContext) -> ProviderResponse:
    model_image = ctx.first("person", "model", "image", parameters=False)
    garment_image = ctx.first("garment", parameters=False) or ctx.param("garmentImage")
    if not model_image:
        raise ExecutionPreconditionError("Clothes Swap requires a model/person image. Connect the input.")
    if not garment_image:
        raise ExecutionPreconditionError("Clothes Swap requires a garment image. Connect the garment input.")
    response = ctx.provider.invoke("fashion/clothes-swap", {
        "modelImage": model_image,
        "garmentImage": garment_image,
        "garmentDescription": ctx.first("prompt", parameters=False) or ctx.param("garmentDescription"),
        "category": ctx.param("category", "tops"),
    })
    images = _image_list(_data(response))
    return _normalize(response, {"images": images, "imageUrl": _first_url(images), "outputType": "image"})


@register_adapter("runwayAnimation")
def runway_animation(ctx: AdapterContext) -> ProviderResponse:
    on_model_image = ctx.first("image", parameters=False) or ctx.param("onModelImage")
    if not on_model_image:
        raise ExecutionPreconditionError("Runway Animation requires a styled model image. Connect the input.")
    duration = ctx.param("duration", "5s")
    if isinstance(duration, (int, float)):
        duration = f"{int(duration)}s"
    response = ctx.provider.invoke("fashion/runway-animation", {
        "onModelImage": on_model_image,
        "walkStyle": ctx.param("walkStyle") or ctx.param("animationType", "commercial"),
        "duration": duration,
        "cameraStyle": ctx.param("cameraStyle") or ctx.param("cameraMotion", "follow"),
    })
    data = _data(response)
    if data.get("jobId") and data.get("status") != "completed":
        # Long-running render: the executor polls the node status from here
        return ProviderResponse(
            status="running",
            jobId=data["jobId"],
            output={"jobId": data["jobId"], "videoUrl": data.get("videoUrl"), "outputType": "video"},
        )
    return _normalize(response, {"videoUrl": data.get("videoUrl"), "outputType": "video"})


# ============================================================================
# Narrative
# ============================================================================

@register_adapter("storyGenesis")
def story_genesis(ctx: AdapterContext) -> ProviderResponse:
    starter_prompt = ctx.first("idea", parameters=False) or ctx.param("starterPrompt")
    if not starter_prompt:
        raise ExecutionPreconditionError(
            "Story Genesis requires a core idea. Enter a prompt or connect an input."
        )
    response = ctx.provider.invoke("story/start", {
        "starterPrompt": starter_prompt,
        "genre": ctx.param("genre", "fantasy"),
        "tone": ctx.param("tone", "serious"),
        "pointOfView": ctx.param("pov", "third-limited"),
        "targetLength": ctx.param("length", "short-story"),
        "targetAudience": ctx.param("audience", "adult"),
        "themes": ctx.param("themes", []),
    })
    data = _data(response)
    return _normalize(response, {
        "story": data.get("story"),
        "characters": data.get("characters"),
        "outline": data.get("outline"),
        "logline": data.get("logline"),
        "text": data.get("logline"),
        "outputType": "text",
    })


@register_adapter("storyStructure")
def story_structure(ctx: AdapterContext) -> ProviderResponse:
    story = ctx.inputs.get("storyObject") or ctx.inputs.get("story")
    if not is_valid_value(story):
        raise ExecutionPreconditionError("Story Structure requires a story concept. Connect the Story input.")
    framework = ctx.param("framework", "three-act")
    response = ctx.provider.invoke("story/structure", {
        "storyId": story.get("id", "temp-story") if isinstance(story, Mapping) else "temp-story",
        "story": story,
        "framework": framework,
        "detailLevel": ctx.param("detailLevel", "detailed"),
        "includeSubplots": ctx.param("includeSubplots", True),
    })
    data = _data(response)
    beats = data.get("beats") or []
    return _normalize(response, {
        "outline": data.get("outline"),
        "beats": beats,
        "acts": data.get("acts"),
        "text": f"{framework} structure with {len(beats)} beats",
        "outputType": "text",
    })


@register_adapter("characterCreator")
def character_creator(ctx: AdapterContext) -> ProviderResponse:
    concept = ctx.first("concept")
    if not concept:
        raise ExecutionPreconditionError("Character Creator requires a character concept.")
    response = ctx.provider.invoke("story/character", {
        "concept": concept,
        "archetype": ctx.param("archetype"),
        "role": ctx.param("role"),
        "depth": ctx.param("depth", "standard"),
        "generatePortrait": ctx.param("generatePortrait", False),
    })
    data = _data(response)
    character = data.get("character") or {}
    if not isinstance(character, Mapping):
        character = {"name": str(character)}
    portrait = data.get("portraitUrl")
    return _normalize(response, {
        "character": character,
        "backstory": data.get("backstory"),
        "arc": data.get("arc"),
        "text": f"{character.get('name', 'Unnamed')}: {character.get('role', '')} - {character.get('archetype', '')}",
        "imageUrl": portrait,
        "outputType": "image" if portrait else "text",
    })


@register_adapter("sceneGenerator")
def scene_generator(ctx: AdapterContext) -> ProviderResponse:
    concept = ctx.first("concept")
    if not concept:
        raise ExecutionPreconditionError("Scene Writer requires a scene concept.")
    response = ctx.provider.invoke("story/scene", {
        "storyContext": ctx.inputs.get("storyObject") or ctx.inputs.get("story") or {},
        "concept": concept,
        "characters": ctx.inputs.get("characters") or [],
        "location": ctx.inputs.get("location"),
        "format": ctx.param("format", "prose"),
        "sceneType": ctx.param("sceneType", "dramatic"),
        "length": ctx.param("length", "medium"),
    })
    data = _data(response)
    scene = data.get("scene") or {}
    return _normalize(response, {
        "scene": scene,
        "dialogue": data.get("dialogue"),
        "text": scene.get("content") if isinstance(scene, Mapping) else data.get("narration"),
        "outputType": "text",
    })


@register_adapter("locationCreator")
def location_creator(ctx: AdapterContext) -> ProviderResponse:
    concept = ctx.first("concept")
    if not concept:
        raise ExecutionPreconditionError("Location Creator requires a location concept.")
    response = ctx.provider.invoke("story/location", {
        "concept": concept,
        "locationType": ctx.param("locationType", "urban"),
        "mood": ctx.param("mood", "mysterious"),
    })
    data = _data(response)
    image_url = data.get("imageUrl")
    return _normalize(response, {
        "location": data.get("location"),
        "text": data.get("description"),
        "imageUrl": image_url,
        "outputType": "image" if image_url else "text",
    })


@register_adapter("dialogueGenerator")
def dialogue_generator(ctx: AdapterContext) -> ProviderResponse:
    characters = ctx.inputs.get("characters") or []
    if not isinstance(characters, list):
        characters = [characters]
    situation = ctx.first("situation")
    if len(characters) < 2:
        raise ExecutionPreconditionError("Character Dialogue requires at least 2 characters connected.")
    if not situation:
        raise ExecutionPreconditionError("Character Dialogue requires a situation/context.")
    response = ctx.provider.invoke("story/dialogue", {
        "characters": characters,
        "situation": situation,
        "dialogueType": ctx.param("dialogueType", "conversation"),
        "format": ctx.param("format", "prose"),
    })
    data = _data(response)
    exchanges = data.get("dialogue")
    if isinstance(exchanges, Mapping):
        exchanges = [exchanges]
    lines = [
        line
        for exchange in (exchanges or [])
        if isinstance(exchange, Mapping)
        for line in (exchange.get("lines") or [])
    ]
    text = "\n".join(
        f"{line.get('characterName') or 'Unknown'}: {line.get('line') or ''}" if isinstance(line, Mapping) else str(line)
        for line in lines
    )
    return _normalize(response, {
        "dialogue": data.get("dialogue"),
        "text": text,
        "outputType": "text",
    })


@register_adapter("plotTwist")
def plot_twist(ctx: AdapterContext) -> ProviderResponse:
    story = ctx.inputs.get("storyObject") or ctx.inputs.get("story")
    if not is_valid_value(story):
        raise ExecutionPreconditionError("Plot Twist requires a story context. Connect the Story input.")
    response = ctx.provider.invoke("story/plot-twist", {
        "storyContext": story,
        "characters": ctx.inputs.get("characters") or [],
        "twistType": ctx.param("twistType", "betrayal"),
        "impactLevel": ctx.param("impactLevel", "major"),
    })
    data = _data(response)
    twist = data.get("twist") or {}
    return _normalize(response, {
        "twist": twist,
        "foreshadowing": data.get("foreshadowingHints"),
        "text": f"{twist.get('type', 'twist')}: {twist.get('revelation', '')}",
        "outputType": "text",
    })


@register_adapter("storyEnhancer")
def story_enhancer(ctx: AdapterContext) -> ProviderResponse:
    content = ctx.first("content", parameters=False)
    scene = ctx.inputs.get("scene")
    if not content and isinstance(scene, Mapping):
        content = scene.get("content")
    if not content:
        raise ExecutionPreconditionError(
            "Story Enhancer requires content to enhance. Connect a scene or text input."
        )
    response = ctx.provider.invoke("story/enhance", {
        "content": content,
        "enhancementFocus": ctx.param("focus", ["prose", "pacing"]),
        "preserveVoice": ctx.param("preserveVoice", True),
    })
    data = _data(response)
    return _normalize(response, {
        "enhancedContent": data.get("enhancedContent"),
        "changes": data.get("changes"),
        "text": data.get("enhancedContent"),
        "outputType": "text",
    })
