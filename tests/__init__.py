# =============================================================================
# PROPOSAL RELAY - TEST SUITE
# =============================================================================
#
# Struktur:
#   tests/
#     unit/           - one module per component
#     integration/    - full tick against in-memory doubles
#
# Usage:
#   pytest tests/
#   pytest tests/unit/test_composer.py -v
#
# =============================================================================
