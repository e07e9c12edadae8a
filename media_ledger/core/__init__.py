"""
Core modules for Media Ledger.

This package contains pricing, duration quantization, usage estimation,
currency conversion, the affordability gate and the server ledger.
"""
