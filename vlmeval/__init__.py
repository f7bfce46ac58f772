"""VLM Evaluation

Load vision-language models from a preset catalog or a bundled directory and
stream text descriptions of images, image sequences, and videos.
"""

__version__ = "1.0.0"
__author__ = "VLMEval Team"
