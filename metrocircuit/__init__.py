"""MetroCircuit: retrieval-augmented Q&A over electrical technical documents."""

__version__ = "0.1.0"
