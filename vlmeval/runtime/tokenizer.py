"""Tokenizer loading and stop-token resolution."""

import logging
from pathlib import Path
from typing import Any, Iterable, List, Union

from transformers import AutoTokenizer

from ..errors import ArtifactMissingError
from ..models.model_types import ModelConfiguration

logger = logging.getLogger(__name__)

BUNDLED_TOKENIZER_FILES = ("tokenizer_config.json", "tokenizer.json")


def load_tokenizer(configuration: ModelConfiguration, directory: Union[str, Path]) -> Any:
    """Load the tokenizer stored alongside a downloaded model."""
    tokenizer = AutoTokenizer.from_pretrained(str(directory))
    logger.info("Tokenizer loaded for %s, vocab size: %s", configuration.name, len(tokenizer))
    return tokenizer


def load_bundled_tokenizer(directory: Union[str, Path]) -> Any:
    """
    Load a tokenizer from a bundled directory without touching the network.

    Raises:
        ArtifactMissingError: If a tokenizer file is absent
    """
    directory = Path(directory)
    for file_name in BUNDLED_TOKENIZER_FILES:
        if not (directory / file_name).exists():
            raise ArtifactMissingError(file_name, str(directory))
    return AutoTokenizer.from_pretrained(str(directory), local_files_only=True)


def eos_token_ids(tokenizer: Any, extra_eos_tokens: Iterable[str] = ()) -> List[int]:
    """Stop ids: the tokenizer's own EOS plus any extra tokens it knows."""
    ids: List[int] = []
    if getattr(tokenizer, "eos_token_id", None) is not None:
        ids.append(tokenizer.eos_token_id)

    vocab = tokenizer.get_vocab()
    for token in sorted(extra_eos_tokens):
        token_id = vocab.get(token)
        if token_id is None:
            logger.warning("Extra EOS token %s is not in the vocabulary", token)
            continue
        if token_id not in ids:
            ids.append(token_id)
    return ids
