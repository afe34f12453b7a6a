# SPDX-License-Identifier: Apache-2.0
"""fmgate: OpenAI-compatible gateway for schema-constrained generation engines."""

__version__ = "0.1.0"
