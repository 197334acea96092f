"""SmartSupply çekirdeği: stok defteri ve sipariş yaşam döngüsü motoru."""

__version__ = "0.1.0"
