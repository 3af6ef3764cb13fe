"""
chatbot.py - Rule-Based Fallback
Keyword lookup used when the AI chat models are not configured or unavailable
"""

KNOWLEDGE_BASE = [
    (
        ("what is", "lung nodule", "pulmonary nodule"),
        "A lung nodule (or pulmonary nodule) is a small, round or oval-shaped growth in the lung. "
        "Most lung nodules are benign (non-cancerous), but some can be malignant. They are typically "
        "detected on chest X-rays or CT scans and are usually smaller than 3 cm in diameter.",
    ),
    (
        ("benign", "non-cancerous", "not cancer"),
        "Benign means non-cancerous. A benign nodule will not spread to other parts of the body. "
        "However, it still requires monitoring through regular follow-up scans. Common causes include "
        "old infections, inflammation, or harmless growths. Your doctor will recommend a monitoring schedule.",
    ),
    (
        ("malignant", "cancerous", "cancer", "lung cancer"),
        "Malignant means cancerous. A malignant nodule has the potential to spread to other parts of the body. "
        "If detected, further diagnostic tests such as biopsy, PET scan, or additional imaging will be needed. "
        "Early detection significantly improves treatment outcomes. Please consult an oncologist immediately.",
    ),
    (
        ("causes", "why", "risk factors", "smoking"),
        "Lung nodules can be caused by various factors including: smoking (primary risk factor), "
        "exposure to asbestos or radon, previous lung infections (tuberculosis, fungal infections), "
        "inflammation, scar tissue, or benign tumors.",
    ),
    (
        ("symptoms", "signs", "feel", "pain"),
        "Most small lung nodules cause NO symptoms and are found incidentally during imaging for other reasons. "
        "Larger nodules or cancerous ones may cause: persistent cough, coughing up blood, chest pain, "
        "shortness of breath, unexplained weight loss, or fatigue.",
    ),
    (
        ("treatment", "cure", "therapy", "surgery"),
        "Treatment depends on the nodule characteristics:\n\n"
        "- Benign small nodules: Regular monitoring with CT scans\n"
        "- Suspicious nodules: May require biopsy or PET scan\n"
        "- Malignant nodules: Surgery, radiation, chemotherapy, or targeted therapy",
    ),
    (
        ("ct scan", "x-ray", "imaging"),
        "A CT scan uses X-rays to create detailed cross-sectional images of your lungs. "
        "It can detect nodules as small as 1-2mm. The scan is painless and typically takes 5-10 minutes.",
    ),
    (
        ("hello", "hi", "hey"),
        "Hello! I'm your AI Medical Assistant. "
        "I can answer questions about pulmonary nodules, CT scans, treatment options, and more. "
        "How can I help you today?",
    ),
]

DEFAULT_FALLBACK_RESPONSE = (
    "I'm sorry, I couldn't process that with the AI engine right now. "
    "Please ask about lung nodules, symptoms, treatments, CT scans, or prevention strategies."
)


def get_rule_based_response(message: str) -> str:
    """Return the first knowledge-base answer whose keyword appears in the message."""
    lower = message.lower().strip()
    for keywords, response in KNOWLEDGE_BASE:
        if any(keyword in lower for keyword in keywords):
            return response
    return DEFAULT_FALLBACK_RESPONSE
