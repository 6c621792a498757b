from collections import OrderedDict, deque
from typing import Deque, List


class MessageHistory:
    """
    Recent chat frames per entity key.

    Each key keeps at most ``capacity`` frames, oldest evicted first. At most
    ``max_keys`` keys are tracked; appending to a key marks it most recently
    used and the least recently used key is dropped once the cap is passed.
    """

    def __init__(self, capacity: int = 100, max_keys: int = 1000) -> None:
        if capacity < 1 or max_keys < 1:
            raise ValueError("capacity and max_keys must be positive")
        self.capacity = capacity
        self.max_keys = max_keys
        self._buffers: "OrderedDict[str, Deque[dict]]" = OrderedDict()

    def append(self, key: str, message: dict) -> None:
        buffer = self._buffers.get(key)
        if buffer is None:
            buffer = deque(maxlen=self.capacity)
            self._buffers[key] = buffer
        else:
            self._buffers.move_to_end(key)
        buffer.append(message)
        while len(self._buffers) > self.max_keys:
            self._buffers.popitem(last=False)

    def get(self, key: str) -> List[dict]:
        return list(self._buffers.get(key, ()))

    def clear(self, key: str) -> None:
        self._buffers.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)
