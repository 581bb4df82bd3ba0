"""
Fake provider transport for environments without a real provider.

It mimics chat-completion streaming: a canned answer is looked up by prompt,
cut into randomly sized chunks and emitted as ``chat.completion.chunk``
payloads with small random delays, stopping early once the abort signal is set.
"""

import asyncio
import logging
import random
from typing import Any, AsyncIterator, Dict, List, Optional

from .model_catalog import ChatModel, model_to_descriptor
from .transport import StreamDelta, Transport

logger = logging.getLogger(__name__)

DEMO_MODEL = ChatModel(
    id="demo_model",
    name="Demo Model",
    owned_by="Demo",
    description="",
)

DEMO_MOCK_PROMPT_INFO = "This is Demo prompt to showcase how the streaming works"

DEMO_MOCK_RESPONSES: List[Dict[str, str]] = [
    {
        "prompt": "Give me a small overview of the C++ programming language",
        "content": """**C++ Overview**
================

C++ is a high-performance, object-oriented programming language developed by Bjarne Stroustrup at Bell Labs in the 1980s. It was designed to be a successor to the C programming language, adding features such as classes, templates, operator overloading, and object-oriented programming (OOP).

### Key Features

* **High-Performance**: C++ is a compiled language, offering direct access to hardware resources, making it a popular choice for systems programming, games development, and other high-performance applications.
* **Object-Oriented**: C++ supports encapsulation, inheritance, and polymorphism, making it a popular choice for complex software development.
* **Statically Typed**: C++ is compiled at compile-time, catching type errors and allowing for compile-time evaluation of expressions.
* **Platform-Portability**: C++ code can be compiled on various platforms, making it a widely-used language for cross-platform development.

### Popular Use Cases

* **Systems Programming**: C++ is widely used for systems programming, embedded systems, and game development.
* **High-Performance Computing**: C++ is used in scientific computing, numerical simulations, and data analytics.
* **Cross-Platform Development**: C++ is used for developing applications that run on multiple platforms, such as Windows, Linux, and macOS.

### Getting Started

To get started with C++, you'll need:

* A C++ compiler (such as `g++` or `clang`)
* A text editor or IDE (such as Visual Studio Code or Eclipse)
* A basic understanding of programming concepts (such as variables, loops, and functions)""",
    },
    {
        "prompt": "Give me a small overview of Greek mythology",
        "content": """**Greek Mythology Overview**
=====================================

Greek mythology is a vast collection of ancient myths and legends that originated in Greece. These stories revolve around various gods, goddesses, and supernatural beings and their interactions with humans.

### Olympian Gods

* **Zeus** (King of the gods and god of the sky)
* **Poseidon** (God of the sea and earthquakes)
* **Hades** (God of the underworld)
* **Hera** (Queen of the gods and goddess of marriage)
* **Athena** (Goddess of wisdom, war, and crafts)
* **Apollo** (God of the sun, music, poetry, and prophecy)

### Titans and Primordial Gods

* **Gaia** (Goddess of the Earth)
* **Uranus** (God of the sky)
* **Cronus** (Titan king and god of time)

**Important Mythological Stories**
--------------------------------------

* **The Trojan War** (A epic war between Greece and Troy)
* **Persephone and Demeter** (Story of the seasons and the underworld)
* **Pandora's Box** (A container that released all evils into the world)

Greek mythology has had a profound impact on Western culture, influencing literature, art, and philosophy for centuries.""",
    },
    {
        "prompt": "Give me a small overview of the Louvre Museum",
        "content": """The Louvre Museum, located in the French capital city of Paris, is one of the world's largest and most famous museums. Here's a brief overview:

**History:** The Louvre was initially a royal palace in the 12th century, commissioned by King Philip II. Over the centuries, it underwent multiple transformations.

**Collections:** The Louvre houses an impressive collection of over 550,000 works of art and artifacts from around the world. Some of its most famous pieces include:

1. **Mona Lisa** (Leonardo da Vinci, 1503-1506): The enigmatic portrait that is arguably the Louvre's greatest attraction.
2. **Venus de Milo** (Greek sculpture, circa 130-100 BCE): A stunning ancient Greek statue of the goddess Aphrodite (Venus).
3. **Nike of Samothrace** (Hellenistic sculpture, circa 190 BCE): A beautiful marble statue of the Greek goddess Nike (Victory).

**Architecture:** The Louvre's iconic glass pyramid, designed by architect I.M. Pei, serves as the main entrance.

Whether you're a history buff, art lover, or simply curious about human culture, the Louvre Museum offers an unforgettable experience.""",
    },
]

MAX_CHUNK_SIZE = 6
MAX_DELAY_MS = 5


def random_demo_prompt(rng: Optional[random.Random] = None) -> str:
    """Pick one of the canned prompts, e.g. to prefill an empty chat."""
    return (rng or random).choice(DEMO_MOCK_RESPONSES)["prompt"]


def _latest_user_prompt(messages: List[Dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            content = message.get("content")
            return content if isinstance(content, str) else ""
    return ""


class DemoTransport(Transport):
    """Transport that streams canned answers without touching the network.

    Args:
        responses: Canned ``{"prompt", "content"}`` pairs; the first one is the fallback
        seed: Seed for chunk sizes and delays
        delay_scale: Multiplier for the 1-5 ms delays; 0 disables sleeping
    """

    def __init__(
        self,
        responses: Optional[List[Dict[str, str]]] = None,
        seed: Optional[int] = None,
        delay_scale: float = 1.0,
    ):
        self.responses = responses or DEMO_MOCK_RESPONSES
        self.rng = random.Random(seed)
        self.delay_scale = delay_scale

    async def list_models(self) -> List[Dict[str, Any]]:
        return [model_to_descriptor(DEMO_MODEL)]

    def canned_response(self, prompt: str) -> str:
        for response in self.responses:
            if response["prompt"] == prompt:
                return response["content"]
        return self.responses[0]["content"]

    def split_chunks(self, content: str) -> List[str]:
        chunks = []
        i = 0
        while i < len(content):
            size = self.rng.randint(1, MAX_CHUNK_SIZE)
            chunks.append(content[i : i + size])
            i += size
        return chunks

    def _event(self, chunk: str) -> Dict[str, Any]:
        return {
            "id": "mock",
            "object": "chat.completion.chunk",
            "choices": [{"index": 0, "delta": {"content": chunk}}],
        }

    async def create_streaming_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
        parallel_tool_calls: bool = False,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamDelta]:
        content = self.canned_response(_latest_user_prompt(messages))
        chunks = self.split_chunks(content)
        logger.debug(f"Demo stream for model {model}: {len(chunks)} chunks")

        for chunk in chunks:
            if abort_signal is not None and abort_signal.is_set():
                break

            yield StreamDelta.from_chunk(self._event(chunk))

            delay_ms = self.rng.randint(1, MAX_DELAY_MS)
            if self.delay_scale:
                await asyncio.sleep(delay_ms * self.delay_scale / 1000)
