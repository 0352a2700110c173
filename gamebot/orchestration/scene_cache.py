# ABOUTME: Per-session cache mapping scene tags to generated skybox image URLs.
# ABOUTME: No eviction; bounded by one game's scenes and cleared wholesale when the game ends.


class SceneCache:
    """Scene tag -> image reference"""

    def __init__(self) -> None:
        self._images: dict[str, str] = {}

    def get(self, scene: str) -> str | None:
        return self._images.get(scene)

    def set(self, scene: str, image_url: str) -> None:
        self._images[scene] = image_url

    def has(self, scene: str) -> bool:
        return scene in self._images

    def clear(self) -> None:
        self._images.clear()

    def __contains__(self, scene: object) -> bool:
        return scene in self._images

    def __len__(self) -> int:
        return len(self._images)
