from __future__ import annotations

import ctypes
from pathlib import Path
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional, Sequence

import llama_cpp
import numpy as np
from llama_cpp import Llama
from llama_cpp.llama_chat_format import Jinja2ChatFormatter, format_chatml

from ..core.session_log import log_debug

if TYPE_CHECKING:
    from ..core.conversation import Message

CHAT_TEMPLATE_KEY = "tokenizer.chat_template"
# End-of-turn markers used by common chat templates besides the model's EOS.
END_OF_TURN_TEXTS = ("<|im_end|>", "<|endoftext|>", "<|eot_id|>", "<end_of_turn>", "<|end|>")


class LlamaCppBackend:
    """Backend over a GGUF model loaded with llama-cpp-python.

    One instance owns one llama.cpp context; it is not thread-safe.
    """

    def __init__(
        self,
        model_path: str | Path,
        *,
        context_window: int,
        threads: Optional[int] = None,
        threads_batch: Optional[int] = None,
    ) -> None:
        path = Path(model_path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Model file not found: {path}")
        self.context_window = context_window
        self._llm = Llama(
            model_path=str(path),
            n_ctx=context_window,
            n_threads=threads,
            n_threads_batch=threads_batch or threads,
            verbose=False,
        )
        self._bos_text = self._special_text(self._llm.token_bos())
        self._formatter = self._build_formatter()
        self._end_tokens = self._collect_end_tokens()
        log_debug(
            "backend",
            "backend.loaded",
            {
                "model": str(path),
                "context_window": context_window,
                "threads": threads,
                "chat_template": self._formatter is not None,
                "end_tokens": sorted(self._end_tokens),
            },
        )

    def format_chat(self, messages: Sequence["Message"]) -> str:
        payload: List[Dict[str, str]] = [
            {"role": message.role.value, "content": message.content} for message in messages
        ]
        if self._formatter is not None:
            response = self._formatter(messages=payload)
        else:
            response = format_chatml(messages=payload)
        return response.prompt

    def tokenize(self, text: str) -> List[int]:
        add_bos = not (self._bos_text and text.startswith(self._bos_text))
        return self._llm.tokenize(text.encode("utf-8"), add_bos=add_bos, special=True)

    def decode(self, tokens: Sequence[int], position: int) -> np.ndarray:
        if position > self._llm.n_tokens:
            raise ValueError(
                f"decode position {position} is past the {self._llm.n_tokens} processed tokens"
            )
        # eval() drops cached state beyond n_tokens before appending
        self._llm.n_tokens = position
        self._llm.eval(list(tokens))
        logits = llama_cpp.llama_get_logits_ith(self._llm.ctx, -1)
        return np.ctypeslib.as_array(logits, shape=(self._llm.n_vocab(),)).copy()

    def is_end_token(self, token: int) -> bool:
        return token in self._end_tokens

    def token_bytes(self, token: int) -> bytes:
        return self._llm.detokenize([token], special=True)

    def save_snapshot(self, path: Path, tokens: Sequence[int]) -> None:
        array = (llama_cpp.llama_token * len(tokens))(*tokens)
        saved = llama_cpp.llama_state_save_file(
            self._llm.ctx, str(path).encode("utf-8"), array, len(tokens)
        )
        if not saved:
            raise OSError(f"llama.cpp could not write session file {path}")

    def load_snapshot(self, path: Path) -> List[int]:
        if not path.is_file():
            raise FileNotFoundError(f"Session file not found: {path}")
        capacity = self.context_window
        array = (llama_cpp.llama_token * capacity)()
        count = ctypes.c_size_t(0)
        loaded = llama_cpp.llama_state_load_file(
            self._llm.ctx, str(path).encode("utf-8"), array, capacity, ctypes.byref(count)
        )
        if not loaded:
            raise OSError(
                f"llama.cpp could not read session file {path} "
                f"(context window {capacity})"
            )
        tokens = list(array[: count.value])
        self._llm.input_ids[: len(tokens)] = tokens
        self._llm.n_tokens = len(tokens)
        return tokens

    def _special_text(self, token: int) -> str:
        if token < 0:
            return ""
        return self._llm.detokenize([token], special=True).decode("utf-8", errors="ignore")

    def _build_formatter(self) -> Optional[Jinja2ChatFormatter]:
        template = self._llm.metadata.get(CHAT_TEMPLATE_KEY)
        if not template:
            return None
        return Jinja2ChatFormatter(
            template=template,
            eos_token=self._special_text(self._llm.token_eos()),
            bos_token=self._bos_text,
            add_generation_prompt=True,
        )

    def _collect_end_tokens(self) -> FrozenSet[int]:
        end_tokens = {self._llm.token_eos()}
        for text in END_OF_TURN_TEXTS:
            ids = self._llm.tokenize(text.encode("utf-8"), add_bos=False, special=True)
            if len(ids) == 1 and self._special_text(ids[0]) == text:
                end_tokens.add(ids[0])
        return frozenset(token for token in end_tokens if token >= 0)
