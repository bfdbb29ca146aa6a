"""Pure game rules: costs, formulas, combat values and the level-up allocator."""
