# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Grease - userscript registry and injection planner."""

__version__ = "0.1.0"
