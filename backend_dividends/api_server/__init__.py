"""
Admin HTTP API (FastAPI) over the dividends runtime.
"""
