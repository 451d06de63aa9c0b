"""HTTP surface for groundrag."""
