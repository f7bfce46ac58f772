"""Tests for model and processor type registries."""

import json
from unittest.mock import Mock, patch

import pytest

from vlmeval.errors import DecodingError, UnsupportedModelTypeError, UnsupportedProcessorTypeError
from vlmeval.models.configuration import (
    MODEL_CONFIGURATION_SCHEMAS,
    PROCESSOR_CONFIGURATION_SCHEMAS,
    Qwen2VLConfiguration,
    Qwen2VLProcessorConfiguration,
)
from vlmeval.models.processors import Qwen2VLInputProcessor
from vlmeval.models.type_registry import (
    ModelTypeRegistry,
    ProcessorTypeRegistry,
    TransformersModelBuilder,
    TransformersProcessorBuilder,
    default_model_type_registry,
    default_processor_type_registry,
    load_chat_template,
)


_TINY_LLAMA = {
    "model_type": "llama", "vocab_size": 128, "hidden_size": 16, "intermediate_size": 32,
    "num_hidden_layers": 1, "num_attention_heads": 2, "num_key_value_heads": 2,
}
_TINY_SIGLIP = {
    "hidden_size": 16, "intermediate_size": 32, "num_hidden_layers": 1,
    "num_attention_heads": 2, "image_size": 32, "patch_size": 16,
}
_TINY_GEMMA = {
    "vocab_size": 128, "hidden_size": 16, "intermediate_size": 32, "num_hidden_layers": 1,
    "num_attention_heads": 2, "num_key_value_heads": 1, "head_dim": 8,
}
_TINY_QWEN_TEXT = {
    "vocab_size": 128, "hidden_size": 16, "intermediate_size": 32, "num_hidden_layers": 1,
    "num_attention_heads": 2, "num_key_value_heads": 1,
}

TINY_FAMILY_CONFIGS = {
    "paligemma": {
        "vision_config": dict(_TINY_SIGLIP, model_type="siglip_vision_model"),
        "text_config": dict(_TINY_GEMMA, model_type="gemma"),
        "projection_dim": 16,
    },
    "qwen2_vl": {
        "vision_config": {"depth": 1, "embed_dim": 16, "hidden_size": 16, "num_heads": 2, "mlp_ratio": 2},
        "text_config": _TINY_QWEN_TEXT,
    },
    "qwen2_5_vl": {
        "vision_config": {
            "depth": 1, "hidden_size": 16, "intermediate_size": 32, "num_heads": 2,
            "out_hidden_size": 16, "fullatt_block_indexes": [0],
        },
        "text_config": _TINY_QWEN_TEXT,
    },
    "idefics3": {
        "vision_config": _TINY_SIGLIP,
        "text_config": _TINY_LLAMA,
        "scale_factor": 2,
    },
    "gemma3": {
        "vision_config": _TINY_SIGLIP,
        "text_config": _TINY_GEMMA,
        "mm_tokens_per_image": 4,
    },
    "smolvlm": {
        "vision_config": _TINY_SIGLIP,
        "text_config": _TINY_LLAMA,
        "scale_factor": 2,
    },
}


class _FakeConfig:
    def __init__(self, values):
        self.values = values

    @classmethod
    def from_dict(cls, values):
        return cls(values)


class _FakeModel:
    def __init__(self, config):
        self.config = config
        self.eval_called = False

    def eval(self):
        self.eval_called = True
        return self


class TestModelTypeRegistry:
    """Test cases for model_type dispatch."""

    def test_dispatches_to_registered_builder(self, tmp_path):
        builder = Mock()
        builder.build.return_value = "model-instance"
        registry = ModelTypeRegistry()
        registry.register("qwen2_vl", builder)

        model = registry.create_model(tmp_path / "config.json", "qwen2_vl")

        assert model == "model-instance"
        builder.build.assert_called_once_with(tmp_path / "config.json")

    def test_unknown_tag_raises_without_building(self, tmp_path):
        builder = Mock()
        registry = ModelTypeRegistry({"qwen2_vl": builder})

        with pytest.raises(UnsupportedModelTypeError) as exc_info:
            registry.create_model(tmp_path / "config.json", "llava")

        assert exc_info.value.tag == "llava"
        builder.build.assert_not_called()

    def test_tags_match_exactly(self, tmp_path):
        registry = ModelTypeRegistry({"qwen2_vl": Mock()})
        with pytest.raises(UnsupportedModelTypeError):
            registry.create_model(tmp_path / "config.json", "Qwen2_VL")

    def test_last_registration_wins(self, tmp_path):
        first, second = Mock(), Mock()
        second.build.return_value = "second"
        registry = ModelTypeRegistry()
        registry.register("smolvlm", first)
        registry.register("smolvlm", second)

        assert registry.create_model(tmp_path / "config.json", "smolvlm") == "second"
        first.build.assert_not_called()
        assert registry.model_types == ["smolvlm"]

    def test_default_registry_families(self):
        registry = default_model_type_registry()
        assert registry.model_types == sorted(
            ["paligemma", "qwen2_vl", "qwen2_5_vl", "idefics3", "gemma3", "smolvlm"]
        )
        assert "gemma3" in registry
        assert "llava" not in registry

    def test_default_builders_use_schema_tables(self):
        model_registry = default_model_type_registry()
        processor_registry = default_processor_type_registry()

        for model_type, schema in MODEL_CONFIGURATION_SCHEMAS.items():
            assert model_registry._builders[model_type].schema is schema
        for processor_type, schema in PROCESSOR_CONFIGURATION_SCHEMAS.items():
            assert processor_registry._builders[processor_type].schema is schema

    @pytest.mark.parametrize("model_type", sorted(TINY_FAMILY_CONFIGS))
    def test_default_builders_construct_each_family(self, tmp_path, model_type):
        """Every default tag builds a real model that reports its own family."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps(dict(TINY_FAMILY_CONFIGS[model_type], model_type=model_type)))

        model = default_model_type_registry().create_model(path, model_type)

        assert model.config.model_type == model_type
        assert model.training is False

    def test_tiny_configs_cover_default_families(self):
        assert set(TINY_FAMILY_CONFIGS) == set(default_model_type_registry().model_types)


class TestProcessorTypeRegistry:
    """Test cases for processor_class dispatch."""

    def test_dispatch_passes_tokenizer(self, tmp_path):
        builder = Mock()
        tokenizer = object()
        registry = ProcessorTypeRegistry({"SmolVLMProcessor": builder})

        registry.create_processor(tmp_path / "preprocessor_config.json", "SmolVLMProcessor", tokenizer)

        builder.build.assert_called_once_with(tmp_path / "preprocessor_config.json", tokenizer)

    def test_unknown_tag(self, tmp_path):
        registry = ProcessorTypeRegistry()
        with pytest.raises(UnsupportedProcessorTypeError, match="LlavaProcessor"):
            registry.create_processor(tmp_path / "preprocessor_config.json", "LlavaProcessor", None)

    def test_default_registry_families(self):
        registry = default_processor_type_registry()
        assert set(registry.processor_types) == {
            "PaliGemmaProcessor", "Qwen2VLProcessor", "Qwen2_5_VLProcessor",
            "Idefics3Processor", "Gemma3Processor", "SmolVLMProcessor",
        }


class TestTransformersModelBuilder:
    """Test cases for the generic schema-driven model builder."""

    def test_builds_unweighted_model_in_eval_mode(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "model_type": "qwen2_vl",
            "vision_config": {"depth": 2},
            "hidden_size": 64,
            "quantization": {"group_size": 64, "bits": 4},
        }))
        builder = TransformersModelBuilder(Qwen2VLConfiguration, _FakeConfig, _FakeModel)

        model = builder.build(path)

        assert model.eval_called is True
        assert model.config.values["hidden_size"] == 64
        assert model.config.values["vision_config"] == {"depth": 2}
        assert "quantization" not in model.config.values

    def test_schema_failure_raises_decoding_error(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"model_type": "qwen2_vl"}))
        builder = TransformersModelBuilder(Qwen2VLConfiguration, _FakeConfig, _FakeModel)

        with pytest.raises(DecodingError):
            builder.build(path)


class TestTransformersProcessorBuilder:
    """Test cases for assembling transformers processors."""

    def test_assembles_processor_with_video_component(self, tmp_path):
        path = tmp_path / "preprocessor_config.json"
        path.write_text(json.dumps({
            "processor_class": "Qwen2VLProcessor",
            "image_mean": [0.5, 0.5, 0.5],
            "image_std": [0.5, 0.5, 0.5],
        }))
        (tmp_path / "chat_template.jinja").write_text("{{ messages }}")
        processor_class = Mock()
        tokenizer = Mock()

        builder = TransformersProcessorBuilder(
            Qwen2VLProcessorConfiguration, processor_class, Qwen2VLInputProcessor,
            uses_video_processor=True,
        )
        with patch("vlmeval.models.type_registry.AutoImageProcessor.from_pretrained",
                   return_value="image-processor"), \
             patch("vlmeval.models.type_registry.AutoVideoProcessor.from_pretrained",
                   return_value="video-processor"):
            result = builder.build(path, tokenizer)

        processor_class.assert_called_once_with(
            tokenizer=tokenizer,
            chat_template="{{ messages }}",
            image_processor="image-processor",
            video_processor="video-processor",
        )
        assert isinstance(result, Qwen2VLInputProcessor)
        assert result.processor is processor_class.return_value
        assert result.configuration.patch_size == 14


class TestChatTemplate:
    """Test cases for chat template lookup."""

    def test_json_template_preferred(self, tmp_path):
        (tmp_path / "chat_template.json").write_text(json.dumps({"chat_template": "json-template"}))
        (tmp_path / "chat_template.jinja").write_text("jinja-template")
        assert load_chat_template(tmp_path, Mock(chat_template="tokenizer-template")) == "json-template"

    def test_falls_back_to_tokenizer(self, tmp_path):
        assert load_chat_template(tmp_path, Mock(chat_template="tokenizer-template")) == "tokenizer-template"
