"""
Catalog package.

Read-side view of the product catalog: the Product and MediaItem models,
the single plan-matching function shared by every caller, and the gallery
assembler that turns a store's concatenated media string into an ordered
list.
"""
