"""
Execution result classification
Normalizes raw provider output into a display result (text, image, video, generic)
"""
from typing import Any, Dict, List, Mapping, Optional


def _image_urls(output: Mapping[str, Any]) -> List[str]:
    images = output.get("images")
    if isinstance(images, list):
        urls = []
        for img in images:
            if isinstance(img, str):
                urls.append(img)
            elif isinstance(img, Mapping) and isinstance(img.get("url"), str):
                urls.append(img["url"])
        return [u for u in urls if u]
    if output.get("imageUrl"):
        return [output["imageUrl"]]
    return []


def classify_output(output: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Classify a provider output

    Checked in order: text (enhancedPrompt, text or outputType 'text'),
    image (imageUrl, images or outputType 'image'), video (videoUrl, video
    or outputType 'video'), generic (result).

    Args:
        output: Raw output dict from the provider

    Returns:
        {'type': 'text', 'data': {...}}, {'type': 'image', 'url': ..., 'urls': [...]},
        {'type': 'video', 'url': ...}, {'type': 'generic', 'data': ...} or None
    """
    if not isinstance(output, Mapping) or not output:
        return None

    output_type = output.get("outputType")

    if output.get("enhancedPrompt") or output.get("text") or output_type == "text":
        return {
            "type": "text",
            "data": {
                "text": output.get("enhancedPrompt") or output.get("text") or output.get("result"),
                "originalText": output.get("originalText"),
                "outputType": output_type,
            },
        }

    if output.get("imageUrl") or output.get("images") or output_type == "image":
        urls = _image_urls(output)
        return {"type": "image", "url": urls[0] if urls else None, "urls": urls}

    if output.get("videoUrl") or output.get("video") or output_type == "video":
        return {"type": "video", "url": output.get("videoUrl") or output.get("video")}

    if output.get("result") is not None:
        return {"type": "generic", "data": output["result"]}

    return None


def normalize_output(output: Any) -> Optional[Dict[str, Any]]:
    """
    Coerce raw provider output into a dict

    Strings become {'text': ...}; lists of URLs or {'url': ...} items become
    {'images': [...]}; anything else is kept under 'result'.
    """
    if output is None or (isinstance(output, (str, list)) and not output):
        return None
    if isinstance(output, Mapping):
        return dict(output)
    if isinstance(output, str):
        return {"text": output}
    if isinstance(output, list) and output and all(
        isinstance(item, str) or (isinstance(item, Mapping) and item.get("url")) for item in output
    ):
        return {"images": list(output)}
    return {"result": output}
