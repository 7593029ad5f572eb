"""
gradleguard: static resolution and auditing of Android build descriptors.

Reads a module build script (Kotlin or Groovy DSL), resolves it into a
per-variant build plan against an environment, and checks the plan for
signing, SDK and variant-separation mistakes before the real toolchain runs.
"""

__version__ = "1.0.0"
__author__ = "gradleguard Team"
