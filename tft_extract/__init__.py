"""
tft-extract: thin-film-transistor and TLM parameter extraction.

Extracts threshold voltage, transconductance, field-effect and low-field
mobility, mobility degradation, subthreshold swing, interface-trap density,
on/off ratio, on-resistance and TLM contact parameters from electrical
sweep measurements, and fuses per-file results into per-sample parameter sets.
"""

__version__ = "0.1.0"
