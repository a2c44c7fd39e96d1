"""
Menu Builder Module

This module generates DVD menu assets from a static still image: the
menu background at the disc resolution, the normal/highlight/select
subpicture masks and the button coordinates for the spumux overlay.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from .context import DiscStandard
from .errors import ValidationError
from .templates import ButtonBox

logger = logging.getLogger(__name__)


@dataclass
class MenuConfig:
    """Configuration for DVD menu generation."""
    play_label: str = "Play"

    # Button layout
    button_width: int = 200
    button_height: int = 60
    frame_width: int = 4

    # Colors (RGBA)
    highlight_color: tuple = (255, 215, 0, 255)  # Gold
    select_color: tuple = (255, 255, 255, 255)
    text_color: tuple = (255, 255, 255, 255)
    label_backing: tuple = (0, 0, 0, 140)


class MenuBuilder:
    """
    Generates a single-button DVD menu from a still image.

    Features:
    - Still image fitted to the disc standard's 16:9 anamorphic frame
    - Play label drawn inside the TV safe area
    - Highlight/select masks for DVD remote navigation
    """

    # Safe area margins (TV overscan)
    SAFE_MARGIN_X = 36
    SAFE_MARGIN_Y = 24

    def __init__(
        self,
        standard: DiscStandard,
        config: Optional[MenuConfig] = None
    ):
        """
        Initialize the menu builder.

        Args:
            standard: Disc standard deciding the menu resolution
            config: Menu configuration options
        """
        self.standard = standard
        self.width, self.height = standard.resolution
        self.config = config or MenuConfig()

        # Try to find a font
        self._font_path = self._find_font()

    def _find_font(self) -> Optional[str]:
        """Find a suitable font for text rendering."""
        font_paths = [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
            "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
            "/System/Library/Fonts/Helvetica.ttc",
        ]

        for path in font_paths:
            if Path(path).exists():
                return path

        return None

    def _get_font(self, size: int) -> ImageFont.ImageFont:
        """Get a font at the specified size."""
        if self._font_path:
            try:
                return ImageFont.truetype(self._font_path, size)
            except OSError:
                logger.warning(f"Could not load font {self._font_path}, using default")

        return ImageFont.load_default()

    def play_button(self) -> ButtonBox:
        """
        Place the play button centered at the bottom of the safe area.

        Vertical coordinates are kept even so both fields carry the button.
        """
        bw = self.config.button_width
        bh = self.config.button_height

        x0 = (self.width - bw) // 2
        y1 = self.height - self.SAFE_MARGIN_Y * 2
        y1 -= y1 % 2
        y0 = y1 - bh
        y0 -= y0 % 2

        return ButtonBox(name="play", x0=x0, y0=y0, x1=x0 + bw, y1=y1)

    def generate_menu_background(
        self,
        still_path: Path,
        output_path: Path,
        buttons: list[ButtonBox]
    ) -> Path:
        """
        Fit the still image to the menu frame and draw the button labels.

        Args:
            still_path: Source still image
            output_path: Where to write the menu PNG
            buttons: Buttons whose labels are drawn

        Returns:
            Path to generated menu background PNG

        Raises:
            ValidationError: If the still image cannot be read
        """
        try:
            with Image.open(still_path) as still:
                # The frame is anamorphic 16:9, so the still is stretched, not cropped
                image = still.convert("RGBA").resize(
                    (self.width, self.height), Image.Resampling.LANCZOS
                )
        except (OSError, UnidentifiedImageError) as e:
            raise ValidationError(f"Cannot read menu image {still_path}: {e}") from e

        overlay = Image.new("RGBA", image.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        font = self._get_font(28)

        for button in buttons:
            draw.rectangle(
                [button.x0, button.y0, button.x1, button.y1],
                fill=self.config.label_backing
            )
            label = self.config.play_label if button.name == "play" else button.name
            bbox = draw.textbbox((0, 0), label, font=font)
            text_x = button.x0 + (button.x1 - button.x0 - (bbox[2] - bbox[0])) // 2
            text_y = button.y0 + (button.y1 - button.y0 - (bbox[3] - bbox[1])) // 2 - bbox[1]
            draw.text((text_x, text_y), label, fill=self.config.text_color, font=font)

        image = Image.alpha_composite(image, overlay).convert("RGB")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(output_path, "PNG")

        logger.info(f"Generated menu background: {output_path}")
        return output_path

    def _generate_mask(
        self,
        buttons: list[ButtonBox],
        output_path: Path,
        color: Optional[tuple],
        frame_width: int
    ) -> Path:
        # Transparent canvas; spumux maps each opaque color to a palette entry
        image = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)

        if color is not None:
            for button in buttons:
                draw.rectangle(
                    [button.x0, button.y0, button.x1 - 1, button.y1 - 1],
                    outline=color,
                    width=frame_width
                )

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(output_path, "PNG")
        return output_path

    def generate_masks(
        self,
        buttons: list[ButtonBox],
        normal_path: Path,
        highlight_path: Path,
        select_path: Path
    ) -> tuple[Path, Path, Path]:
        """
        Generate the normal, highlight and select subpicture masks.

        The normal mask is empty; highlight draws a frame around each button
        and select a thicker frame in the select color.

        Returns:
            Paths of the (normal, highlight, select) PNGs
        """
        normal = self._generate_mask(buttons, normal_path, None, 0)
        highlight = self._generate_mask(
            buttons, highlight_path, self.config.highlight_color, self.config.frame_width
        )
        select = self._generate_mask(
            buttons, select_path, self.config.select_color, self.config.frame_width + 2
        )

        logger.info(f"Generated highlight mask: {highlight}")
        logger.info(f"Generated select mask: {select}")
        return normal, highlight, select
