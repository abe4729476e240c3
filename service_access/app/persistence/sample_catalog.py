"""
Demo catalog used to bootstrap an empty store.
"""

from typing import List

from ..catalog.models import MediaItem, MediaKind, Product


def sample_products() -> List[Product]:
    """Two demo products; the first one carries a three-item gallery."""
    return [
        Product(
            id=None,
            name="Whatsapp Da Fabi",
            description="Clique no botão abaixo e fale com a Fabaine no seu Whatsapp particular",
            banner_url="https://files.catbox.moe/i6sfiz.png",
            main_video="https://e-volutionn.com/wp-content/uploads/2025/07/download-1.mp4",
            access_url="https://wa.me/5511975768554?text=Oi%20Fabi%2C%20vim%20pelo%20APP",
            category="meus_produtos",
            plan_1="PPLQQLST6",
            gallery=[
                MediaItem(MediaKind.IMAGE, "https://e-volutionn.com/wp-content/uploads/2025/07/IMG_7978.jpg", 0),
                MediaItem(MediaKind.IMAGE, "https://e-volutionn.com/wp-content/uploads/2025/07/IMG_7975.jpg", 1),
                MediaItem(MediaKind.VIDEO, "https://e-volutionn.com/wp-content/uploads/2025/05/AMOSTRA-01.mp4", 2),
            ],
        ),
        Product(
            id=None,
            name="Pack Premium Exclusivo",
            description=(
                "Conteúdo premium exclusivo para membros VIP. "
                "Acesso a lives privadas e materiais únicos."
            ),
            banner_url="https://images.unsplash.com/photo-1494790108755-2616c78d9f14?w=400&h=600&fit=crop",
            main_video="https://www.w3schools.com/html/mov_bbb.mp4",
            buy_url="https://hotmoney.space/",
            price=147.00,
            category="mais_vendidos",
            plan_1="PPLQQLST7",
        ),
    ]
