"""
Sample pharmacy catalog used to seed the medicines container.

Prices are strings so they load into Decimal without float rounding.
"""

IMAGE_URL = "https://images.pexels.com/photos/3683107/pexels-photo-3683107.jpeg"

MEDICINES = [
    {
        "id": "med-001",
        "name": "Paracetamol 500mg",
        "description": "Pain relief and fever reducer. Safe for adults and children over 12.",
        "price": "12.50",
        "stock_quantity": 100,
        "category": "Pain Relief",
    },
    {
        "id": "med-002",
        "name": "Amoxicillin 250mg",
        "description": "Antibiotic for bacterial infections. Prescription required.",
        "price": "25.00",
        "stock_quantity": 50,
        "category": "Antibiotics",
    },
    {
        "id": "med-003",
        "name": "Cetirizine 10mg",
        "description": "Antihistamine for allergies and hay fever relief.",
        "price": "8.75",
        "stock_quantity": 80,
        "category": "Allergy",
    },
    {
        "id": "med-004",
        "name": "Ibuprofen 400mg",
        "description": "Anti-inflammatory pain relief for muscle and joint pain.",
        "price": "15.30",
        "stock_quantity": 75,
        "category": "Pain Relief",
    },
    {
        "id": "med-005",
        "name": "Vitamin C 1000mg",
        "description": "Immune system support with high-strength vitamin C tablets.",
        "price": "18.90",
        "stock_quantity": 120,
        "category": "Vitamins",
    },
    {
        "id": "med-006",
        "name": "Aspirin 325mg",
        "description": "Pain reliever and blood thinner. Consult doctor for regular use.",
        "price": "9.99",
        "stock_quantity": 90,
        "category": "Pain Relief",
    },
    {
        "id": "med-007",
        "name": "Omeprazole 20mg",
        "description": "Proton pump inhibitor for acid reflux and heartburn.",
        "price": "22.50",
        "stock_quantity": 60,
        "category": "Digestive",
    },
    {
        "id": "med-008",
        "name": "Loratadine 10mg",
        "description": "Non-drowsy antihistamine for seasonal allergies.",
        "price": "11.25",
        "stock_quantity": 85,
        "category": "Allergy",
    },
]
