"""Filament spool tag reader: key derivation, sector reads, decoding and inventory."""
