"""Personal expense tracker: FastAPI service and Streamlit client."""

__version__ = "1.0.0"
