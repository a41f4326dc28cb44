"""Pure domain layer: DTOs, sign conventions, hierarchy arena, validation, clock."""
