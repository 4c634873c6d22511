"""Tests for compression options and config validation."""

import os
import shutil
import tempfile
import unittest

from KTXForge.config import (
    ASTC_BLOCK_SIZES,
    CompressionFormat,
    CompressionOptions,
    ForgeConfig,
    _merge_dict_to_dataclass,
    parse_format,
)
from KTXForge.errors import InvalidOptions, UnsupportedFormat


class TestCompressionOptions(unittest.TestCase):
    def test_defaults(self):
        opts = CompressionOptions(format="etc2")
        self.assertIs(opts.format, CompressionFormat.ETC2)
        self.assertEqual(opts.quality, 5)
        self.assertEqual(opts.bitrate, 2.0)
        self.assertEqual(opts.block_size, "8x8")
        self.assertFalse(opts.alpha_bit)

    def test_all_eleven_formats_accepted(self):
        names = [
            "pvrtc1", "pvrtc2", "etc1", "etc2", "astc", "dxt1", "dxt3", "dxt5",
            "crunch-dxt1", "crunch-dxt3", "crunch-dxt5",
        ]
        for name in names:
            with self.subTest(name=name):
                self.assertEqual(CompressionOptions(format=name).format.value, name)

    def test_unknown_format_rejected(self):
        with self.assertRaises(UnsupportedFormat) as ctx:
            CompressionOptions(format="bc7")
        self.assertIn("bc7", str(ctx.exception))
        self.assertIsInstance(ctx.exception, InvalidOptions)

    def test_missing_format_rejected(self):
        with self.assertRaises(InvalidOptions):
            CompressionOptions(format=None)

    def test_quality_bounds(self):
        CompressionOptions(format="etc1", quality=0)
        CompressionOptions(format="etc1", quality=10)
        for bad in (-1, 11, 2.5, True, "5"):
            with self.subTest(quality=bad):
                with self.assertRaises(InvalidOptions):
                    CompressionOptions(format="etc1", quality=bad)

    def test_integral_float_quality_coerced(self):
        self.assertEqual(CompressionOptions(format="etc1", quality=7.0).quality, 7)

    def test_pvrtc_bitrate(self):
        CompressionOptions(format="pvrtc1", bitrate=2)
        CompressionOptions(format="pvrtc2", bitrate=4)
        with self.assertRaises(InvalidOptions):
            CompressionOptions(format="pvrtc1", bitrate=3)

    def test_bitrate_ignored_for_other_formats(self):
        self.assertEqual(CompressionOptions(format="dxt5", bitrate=3).bitrate, 3.0)

    def test_astc_block_sizes(self):
        for size in ASTC_BLOCK_SIZES:
            CompressionOptions(format="astc", block_size=size)
        with self.assertRaises(InvalidOptions):
            CompressionOptions(format="astc", block_size="7x7")
        with self.assertRaises(InvalidOptions):
            CompressionOptions(format="astc", block_size="1x1")
        # block size only matters for astc
        CompressionOptions(format="etc1", block_size="7x7")

    def test_all_violations_reported(self):
        with self.assertRaises(InvalidOptions) as ctx:
            CompressionOptions(format="pvrtc1", quality=42, bitrate=8)
        message = str(ctx.exception)
        self.assertIn("quality", message)
        self.assertIn("bitrate", message)

    def test_frozen(self):
        opts = CompressionOptions(format="etc1")
        with self.assertRaises(Exception):
            opts.quality = 3

    def test_from_mapping_accepts_camel_case(self):
        opts = CompressionOptions.from_mapping(
            {"format": "astc", "blockSize": "6x6", "alphaBit": True}
        )
        self.assertEqual(opts.block_size, "6x6")
        self.assertTrue(opts.alpha_bit)

    def test_from_mapping_rejects_unknown_keys(self):
        with self.assertRaises(InvalidOptions):
            CompressionOptions.from_mapping({"format": "etc1", "mipmaps": True})

    def test_from_mapping_requires_format(self):
        with self.assertRaises(InvalidOptions):
            CompressionOptions.from_mapping({"quality": 3})


class TestCompressionFormat(unittest.TestCase):
    def test_container_extension(self):
        self.assertEqual(CompressionFormat.CRUNCH_DXT5.container_extension, ".crn")
        self.assertEqual(CompressionFormat.DXT5.container_extension, ".ktx")
        self.assertEqual(CompressionFormat.ASTC.container_extension, ".ktx")

    def test_dxt_variant(self):
        self.assertEqual(CompressionFormat.CRUNCH_DXT3.dxt_variant, "dxt3")
        self.assertEqual(CompressionFormat.DXT1.dxt_variant, "dxt1")
        self.assertIsNone(CompressionFormat.ETC2.dxt_variant)

    def test_parse_format_passthrough(self):
        self.assertIs(parse_format(CompressionFormat.ASTC), CompressionFormat.ASTC)


class TestForgeConfig(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_default_config_valid(self):
        ForgeConfig().validate()

    def test_invalid_log_level(self):
        config = ForgeConfig()
        config.log_level = "LOUD"
        with self.assertRaises(ValueError):
            config.validate()

    def test_helper_threads_bounds(self):
        config = ForgeConfig()
        config.tools.helper_threads = -1
        with self.assertRaises(ValueError):
            config.validate()
        config.tools.helper_threads = 257
        with self.assertRaises(ValueError):
            config.validate()

    def test_helper_threads_auto(self):
        config = ForgeConfig()
        self.assertEqual(config.tools.resolve_helper_threads(), os.cpu_count() or 1)
        config.tools.helper_threads = 3
        self.assertEqual(config.tools.resolve_helper_threads(), 3)

    def test_invalid_texture_options_rejected(self):
        config = ForgeConfig()
        config.texture.format = "pvrtc1"
        config.texture.bitrate = 3.0
        with self.assertRaises(ValueError) as ctx:
            config.validate()
        self.assertIn("texture", str(ctx.exception))

    def test_temp_dir_must_not_be_file(self):
        path = os.path.join(self.tmpdir, "file.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write("x")
        config = ForgeConfig()
        config.temp_dir = path
        with self.assertRaises(ValueError):
            config.validate()

    def test_yaml_round_trip(self):
        path = os.path.join(self.tmpdir, "nested", "config.yaml")
        config = ForgeConfig()
        config.texture.format = "astc"
        config.texture.block_size = "6x6"
        config.tools.tool_paths["astcenc"] = "/opt/astcenc"
        config.to_yaml(path)

        loaded = ForgeConfig.from_yaml(path)
        self.assertEqual(loaded.texture.format, "astc")
        self.assertEqual(loaded.texture.block_size, "6x6")
        self.assertEqual(loaded.tools.tool_paths, {"astcenc": "/opt/astcenc"})
        self.assertEqual(os.listdir(os.path.dirname(path)), ["config.yaml"])

    def test_missing_yaml_uses_defaults(self):
        config = ForgeConfig.from_yaml(os.path.join(self.tmpdir, "absent.yaml"))
        self.assertEqual(config.texture.format, "etc1")

    def test_non_mapping_yaml_rejected(self):
        path = os.path.join(self.tmpdir, "list.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("- a\n- b\n")
        with self.assertRaises(ValueError):
            ForgeConfig.from_yaml(path)

    def test_invalid_yaml_values_rejected(self):
        path = os.path.join(self.tmpdir, "bad.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("texture:\n  format: bc7\n")
        with self.assertRaises(ValueError) as ctx:
            ForgeConfig.from_yaml(path)
        self.assertIn(path, str(ctx.exception))


class TestMergeDict(unittest.TestCase):
    def test_type_mismatch_keeps_default(self):
        config = ForgeConfig()
        with self.assertLogs("ktxforge.config", level="WARNING") as cm:
            _merge_dict_to_dataclass(config, {"texture": {"quality": "high"}})
        self.assertEqual(config.texture.quality, 5)
        self.assertTrue(any("texture.quality" in msg for msg in cm.output))

    def test_unknown_key_warns(self):
        config = ForgeConfig()
        with self.assertLogs("ktxforge.config", level="WARNING") as cm:
            _merge_dict_to_dataclass(config, {"nonsense": 1})
        self.assertTrue(any("nonsense" in msg for msg in cm.output))

    def test_integral_float_promoted(self):
        config = ForgeConfig()
        _merge_dict_to_dataclass(config, {"texture": {"quality": 9.0, "bitrate": 4}})
        self.assertEqual(config.texture.quality, 9)
        self.assertIsInstance(config.texture.quality, int)
        self.assertEqual(config.texture.bitrate, 4)


if __name__ == "__main__":
    unittest.main(verbosity=2)
