"""Simple program to list nearby BLE peripherals."""

from bleconnector.ble_connector import BleakStack

peripherals = BleakStack.scan(name_filter="")
print(f"Found: {len(peripherals)} peripherals")
for peripheral in peripherals:
    print(f"  {peripheral.display_name} ({peripheral.identifier}) rssi={peripheral.rssi}")
