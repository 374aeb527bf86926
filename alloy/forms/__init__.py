"""Forms: RFQ specification sheets and purchase orders rendered as PDF."""
