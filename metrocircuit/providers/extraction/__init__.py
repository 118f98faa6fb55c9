"""Text-extraction strategies, listed in their default priority order."""

from metrocircuit.providers.extraction.format_converter import FormatConverter
from metrocircuit.providers.extraction.llm_vision_extractor import LLMVisionExtractor
from metrocircuit.providers.extraction.pdf_text_extractor import PdfTextExtractor
from metrocircuit.providers.extraction.tesseract_extractor import TesseractExtractor

__all__ = ["PdfTextExtractor", "LLMVisionExtractor", "TesseractExtractor", "FormatConverter"]
