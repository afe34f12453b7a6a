# SPDX-License-Identifier: Apache-2.0
"""Wire models and request/response translation for the OpenAI-compatible API."""
